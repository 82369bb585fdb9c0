#!/usr/bin/env python3
"""
IXWALLET - Core Configuration

Network selection, storage locations, keystore work factors and
environment management.
"""

import os
from dataclasses import dataclass
from enum import Enum

from dotenv import load_dotenv

_dotenv_loaded = False


def _ensure_dotenv() -> None:
    """Load .env file exactly once, on first call."""
    global _dotenv_loaded
    if not _dotenv_loaded:
        load_dotenv()
        _dotenv_loaded = True


class ChainType(Enum):
    """Chain families a wallet can live on."""

    ICX = "icx"
    ETH = "eth"

    @property
    def symbol(self) -> str:
        return self.value

    @property
    def decimals(self) -> int:
        return 18


class IconNetwork(Enum):
    """ICON networks the wallet can talk to."""

    MAIN = "main"
    DEV = "dev"
    YEOUIDO = "yeouido"


# provider, nid
ICON_ENDPOINTS = {
    IconNetwork.MAIN: ("https://wallet.icon.foundation", "0x1"),
    IconNetwork.DEV: ("https://testwallet.icon.foundation", "0x2"),
    IconNetwork.YEOUIDO: ("https://bicon.net.solidwallet.io", "0x3"),
}


@dataclass
class WalletConfig:
    """
    Everything the wallet engine needs to know about its surroundings.
    Nothing secret lives here: keys stay inside keystores.
    """

    # ICON
    icon_network: IconNetwork = IconNetwork.MAIN
    icx_rpc_url: str = ""
    icx_nid: str = ""

    # Ethereum
    eth_rpc_url: str = ""
    eth_chain_id: int = 0

    # Storage
    db_path: str = ""
    backup_dir: str = ""

    # Exchange
    currency: str = ""
    exchange_api_url: str = "https://wallet.icon.foundation/v0/exchange/price"

    # Networking
    rpc_timeout_seconds: float = 15.0
    refresh_interval_seconds: float = 30.0
    in_flight_timeout_seconds: float = 60.0

    # Keystore work factors (scrypt N)
    icx_scrypt_n: int = 16384
    eth_scrypt_n: int = 262144

    # Fee limits
    default_step_limit: int = 100_000
    default_token_step_limit: int = 150_000
    default_gas_limit: int = 21_000
    default_token_gas_limit: int = 55_000

    # Logging
    log_level: str = "INFO"
    log_file: str = "ixwallet.log"

    def __post_init__(self):
        """Fill env-based defaults after dataclass init (avoids module-level side effects)."""
        _ensure_dotenv()
        if isinstance(self.icon_network, str):
            self.icon_network = IconNetwork(self.icon_network.lower())
        provider, nid = ICON_ENDPOINTS[self.icon_network]
        if not self.icx_rpc_url:
            self.icx_rpc_url = os.getenv("ICX_RPC_URL", provider)
        if not self.icx_nid:
            self.icx_nid = os.getenv("ICX_NID", nid)
        if not self.eth_rpc_url:
            self.eth_rpc_url = os.getenv("ETH_RPC_URL", "https://rpc.ankr.com/eth")
        if not self.eth_chain_id:
            self.eth_chain_id = int(os.getenv("ETH_CHAIN_ID", "1"))
        if not self.db_path:
            self.db_path = os.getenv("IXWALLET_DB_PATH", "ixwallet.db")
        if not self.backup_dir:
            self.backup_dir = os.getenv("IXWALLET_BACKUP_DIR", "ICONex")
        if not self.currency:
            self.currency = os.getenv("IXWALLET_CURRENCY", "usd")
        self.currency = self.currency.lower()

    def __repr__(self) -> str:
        return (
            f"WalletConfig(icon_network={self.icon_network.value}, "
            f"icx_rpc_url='{self.icx_rpc_url[:40]}', "
            f"eth_rpc_url='{self.eth_rpc_url[:40]}', "
            f"eth_chain_id={self.eth_chain_id}, "
            f"db_path='{self.db_path}', currency={self.currency})"
        )

    @property
    def exchange_decimals(self) -> int:
        """USD totals round to cents, everything else to four places."""
        return 2 if self.currency == "usd" else 4

    def validate(self) -> list[str]:
        """Collect every configuration problem instead of stopping at the first."""
        errors = []

        for name, url in (("ICX", self.icx_rpc_url), ("ETH", self.eth_rpc_url)):
            if not url:
                errors.append(f"{name} RPC URL required")
            elif not url.startswith("https://"):
                if not url.startswith("http://127.0.0.1") and not url.startswith(
                    "http://localhost"
                ):
                    errors.append(f"{name} RPC URL must use HTTPS")

        if not self.icx_nid.startswith("0x"):
            errors.append("ICX network id must be a 0x-prefixed hex string")

        if self.eth_chain_id <= 0:
            errors.append("ETH chain id must be positive")

        if not self.currency.isalpha():
            errors.append("Currency must be an alphabetic code such as 'usd'")

        if self.rpc_timeout_seconds <= 0:
            errors.append("RPC timeout must be positive")

        if self.refresh_interval_seconds <= 0:
            errors.append("Refresh interval must be positive")

        if self.in_flight_timeout_seconds < self.rpc_timeout_seconds:
            errors.append("In-flight timeout must not be shorter than the RPC timeout")

        for name, n in (("ICX", self.icx_scrypt_n), ("ETH", self.eth_scrypt_n)):
            if n < 2 or n & (n - 1):
                errors.append(f"{name} scrypt N must be a power of two")

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Unknown log level: {self.log_level}")

        return errors
