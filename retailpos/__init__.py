"""
RetailPOS - order composition and stock consistency engine for a retail point of sale.
"""

__version__ = "1.0.0"
