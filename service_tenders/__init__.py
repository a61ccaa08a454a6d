"""
Tender Listing Service.
"""
