#!/usr/bin/env python3
"""
IXWALLET - Logging

Readable wallet events. Never a private key, never a password.
"""

import logging
from logging.handlers import RotatingFileHandler

from .config import WalletConfig


class WalletLogger:
    """
    Thin narrative layer over the IXWALLET logger.
    Addresses are shortened; secrets are never accepted as arguments.
    """

    def __init__(self, config: WalletConfig):
        self.logger = logging.getLogger("IXWALLET")
        self.logger.setLevel(getattr(logging, config.log_level))

        # logging.getLogger returns a shared instance; handlers would stack
        # on every WalletLogger created (e.g. in tests) without this guard.
        if not self.logger.handlers:
            console = logging.StreamHandler()
            console.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)8s | %(message)s',
                datefmt='%H:%M:%S'
            ))
            self.logger.addHandler(console)

            file_handler = RotatingFileHandler(
                config.log_file,
                maxBytes=10_000_000,  # 10MB
                backupCount=5
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)8s | %(name)s | %(message)s'
            ))
            self.logger.addHandler(file_handler)

    @staticmethod
    def short(address: str) -> str:
        if len(address) <= 14:
            return address
        return f"{address[:8]}...{address[-4:]}"

    def wallet_created(self, alias: str, address: str, chain: str):
        self.logger.info(f"WALLET SAVED: \"{alias}\" ({chain.upper()}) {self.short(address)}")

    def wallet_deleted(self, alias: str, address: str):
        self.logger.info(f"WALLET DELETED: \"{alias}\" {self.short(address)}")

    def bundle_entry_skipped(self, address: str, reason: str):
        self.logger.warning(f"Bundle entry skipped: {self.short(address)} - {reason}")

    def balance_refreshed(self, address: str, native: int | None, tokens: int):
        shown = "n/a" if native is None else str(native)
        self.logger.debug(
            f"Balance refreshed: {self.short(address)} | native={shown} | tokens={tokens}"
        )

    def transfer_submitted(self, chain: str, tx_hash: str, to: str, amount: int):
        self.logger.info(f"TRANSFER SENT ({chain.upper()}): {amount} -> {self.short(to)}")
        self.logger.info(f"   Tx: {tx_hash}")

    def error(self, context: str, error: Exception):
        self.logger.error(f"{context}: {str(error)}")

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def debug(self, message: str):
        self.logger.debug(message)
