"""
Relational store access.
"""

from .postgres import TenderRepository

__all__ = ["TenderRepository"]
