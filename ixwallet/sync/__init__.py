"""
IXWALLET Sync - Balance cache and refresh engine.
"""

from .cache import BalanceCache
from .engine import BalanceEvent, BalanceSyncEngine

__all__ = [
    "BalanceCache",
    "BalanceSyncEngine",
    "BalanceEvent",
]
