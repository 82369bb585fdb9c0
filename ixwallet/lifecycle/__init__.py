"""
IXWALLET Lifecycle - Wallet creation, import, export and the address book.
"""

from .address_book import AddressBook, TransactionHistory
from .creator import CreationState, WalletCreator
from .manager import BundleImportResult, ExportItem, WalletLifecycleManager

__all__ = [
    "WalletLifecycleManager",
    "WalletCreator",
    "CreationState",
    "BundleImportResult",
    "ExportItem",
    "AddressBook",
    "TransactionHistory",
]
