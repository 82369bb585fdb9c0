"""
IXWALLET Core - Keys, records, chain clients and the backup bundle format.
"""

from .bundle import BundleEntry, decode_bundle, encode_bundle
from .client import EthereumClient, IconClient
from .keys import KeyMaterial
from .models import TokenInfo, WalletRecord

__all__ = [
    "KeyMaterial",
    "WalletRecord",
    "TokenInfo",
    "IconClient",
    "EthereumClient",
    "BundleEntry",
    "decode_bundle",
    "encode_bundle",
]
