"""
IXWALLET Transfer - Transaction building and signing.
"""

from .builder import TokenMetadata, TransactionBuilder

__all__ = [
    "TransactionBuilder",
    "TokenMetadata",
]
