#!/usr/bin/env python3
"""
IXWALLET - Wallet Records

Persisted shapes: wallets, their tokens, address book entries and
sent-transaction history.
"""

from dataclasses import dataclass, field
from datetime import datetime

from ixwallet.config import ChainType


def normalize_address(address: str, chain: ChainType) -> str:
    """
    Canonical cache/dedup key for an address.

    "0xABC", "ABC" -> "0xabc" on ETH; "hxABC", "ABC" -> "hxabc" on ICX.
    """
    body = address.strip().lower()
    if chain == ChainType.ICX and body.startswith("cx"):
        return body  # score (contract) address
    if body.startswith("0x") or body.startswith("hx"):
        body = body[2:]
    prefix = "hx" if chain == ChainType.ICX else "0x"
    return prefix + body


def infer_chain(address: str) -> ChainType:
    """Best-effort chain guess from an address prefix."""
    return ChainType.ICX if address.strip().lower().startswith("hx") else ChainType.ETH


@dataclass
class TokenInfo:
    """A fungible token held by exactly one wallet."""

    name: str
    symbol: str
    decimal: int
    depended_address: str
    contract_address: str
    parent_type: ChainType
    default_name: str = ""
    default_symbol: str = ""
    default_decimal: int = 0
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.default_name:
            self.default_name = self.name
        if not self.default_symbol:
            self.default_symbol = self.symbol
        if not self.default_decimal:
            self.default_decimal = self.decimal
        self.contract_address = self.contract_address.lower()


@dataclass
class WalletRecord:
    """
    One stored wallet. The keystore blob is the only place key
    material exists at rest.
    """

    alias: str
    address: str
    chain: ChainType
    keystore: str
    tokens: list[TokenInfo] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    balance: int | None = None  # attached from BalanceCache, never persisted

    def __post_init__(self):
        self.address = normalize_address(self.address, self.chain)

    @property
    def normalized_address(self) -> str:
        return self.address

    @property
    def decimals(self) -> int:
        return self.chain.decimals


@dataclass
class AddressBookEntry:
    """A named counter-party address."""

    name: str
    address: str
    chain: ChainType
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class TransactionRecord:
    """A transfer this wallet submitted."""

    tx_hash: str
    from_address: str
    to_address: str
    value: str  # 0x-prefixed hex amount
    chain: ChainType
    token_symbol: str | None = None
    date: datetime = field(default_factory=datetime.now)
    completed: bool = False
    counterparty_name: str = ""
