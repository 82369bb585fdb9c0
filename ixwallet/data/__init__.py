"""
IXWALLET Data - Wallet store and exchange rates.
"""

from .database import WalletStore
from .price_feed import ExchangeRate, ExchangeRateFeed

__all__ = [
    "WalletStore",
    "ExchangeRateFeed",
    "ExchangeRate",
]
