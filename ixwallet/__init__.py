"""
IXWALLET - ICX and ETH Wallet Manager

Keystore-backed wallets for ICON and Ethereum: create, import, back up,
track balances, and send coins and tokens.

Usage:
    from ixwallet import WalletApp, WalletConfig, ChainType

    app = WalletApp(WalletConfig())
    record = app.manager.create_wallet(ChainType.ICX, "main", "password")
    await app.refresh()
"""

__version__ = "1.0.0"

# Configuration
from ixwallet.app import WalletApp
from ixwallet.config import ChainType, IconNetwork, WalletConfig

# Core
from ixwallet.core.bundle import BundleEntry, decode_bundle, encode_bundle
from ixwallet.core.client import EthereumClient, IconClient
from ixwallet.core.keys import KeyMaterial
from ixwallet.core.models import (
    AddressBookEntry,
    TokenInfo,
    TransactionRecord,
    WalletRecord,
    normalize_address,
)

# Data
from ixwallet.data.database import WalletStore
from ixwallet.data.price_feed import ExchangeRateFeed

# Exceptions
from ixwallet.exceptions import (
    DuplicateAddress,
    DuplicateAlias,
    DuplicateName,
    InsufficientBalance,
    InvalidChainType,
    IXWalletError,
    MalformedBundle,
    MalformedKey,
    MalformedKeystore,
    NetworkError,
    SigningError,
    SubmissionError,
    TransferError,
    WrongPasswordError,
)

# Lifecycle
from ixwallet.lifecycle.address_book import AddressBook, TransactionHistory
from ixwallet.lifecycle.manager import BundleImportResult, ExportItem, WalletLifecycleManager

# Logger
from ixwallet.logger import WalletLogger

# Balances
from ixwallet.sync.cache import BalanceCache
from ixwallet.sync.engine import BalanceEvent, BalanceSyncEngine

# Transfers
from ixwallet.transfer.builder import TokenMetadata, TransactionBuilder

__all__ = [
    # Config
    "WalletConfig",
    "ChainType",
    "IconNetwork",
    # Exceptions
    "IXWalletError",
    "InvalidChainType",
    "MalformedKey",
    "WrongPasswordError",
    "MalformedKeystore",
    "DuplicateAlias",
    "DuplicateAddress",
    "DuplicateName",
    "MalformedBundle",
    "SigningError",
    "SubmissionError",
    "NetworkError",
    "InsufficientBalance",
    "TransferError",
    # Logger
    "WalletLogger",
    # Core
    "KeyMaterial",
    "WalletRecord",
    "TokenInfo",
    "AddressBookEntry",
    "TransactionRecord",
    "normalize_address",
    "BundleEntry",
    "decode_bundle",
    "encode_bundle",
    "IconClient",
    "EthereumClient",
    # Data
    "WalletStore",
    "ExchangeRateFeed",
    # Balances
    "BalanceCache",
    "BalanceSyncEngine",
    "BalanceEvent",
    # Lifecycle
    "WalletLifecycleManager",
    "BundleImportResult",
    "ExportItem",
    "AddressBook",
    "TransactionHistory",
    # Transfers
    "TransactionBuilder",
    "TokenMetadata",
    # App
    "WalletApp",
]
