"""
Tender request pipeline.
"""

from .service import BYPASS, HIT, MISS, ServedResult, TenderQueryService

__all__ = ["BYPASS", "HIT", "MISS", "ServedResult", "TenderQueryService"]
