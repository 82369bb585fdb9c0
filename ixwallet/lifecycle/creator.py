#!/usr/bin/env python3
"""
IXWALLET - Wallet Creation Flow

One creation or import, step by step:

    IDLE -> TYPE_SELECTED -> KEY_ESTABLISHED -> PERSISTED

Each step checks the one before it. Nothing reaches the store until
persist(); abort() from any state leaves the store untouched.
"""

from datetime import datetime
from enum import Enum

from ixwallet.config import ChainType
from ixwallet.core.keys import KeyMaterial, parse_private_key
from ixwallet.core.models import TokenInfo, WalletRecord, normalize_address
from ixwallet.data.database import WalletStore
from ixwallet.exceptions import (
    CreationStateError,
    DuplicateAddress,
    DuplicateAlias,
    InvalidChainType,
    MalformedKeystore,
)


class CreationState(Enum):
    IDLE = "idle"
    TYPE_SELECTED = "type_selected"
    KEY_ESTABLISHED = "key_established"
    PERSISTED = "persisted"


class WalletCreator:
    """Single-use state machine for admitting one wallet."""

    def __init__(self, keys: KeyMaterial, store: WalletStore):
        self.keys = keys
        self.store = store
        self.state = CreationState.IDLE
        self.chain: ChainType | None = None
        self.address: str | None = None
        self._private_key: bytes | None = None
        self._keystore: str | None = None

    def _require(self, state: CreationState):
        if self.state != state:
            raise CreationStateError(
                f"Expected state {state.value}, currently {self.state.value}"
            )

    # ── IDLE -> TYPE_SELECTED ─────────────────────────────

    def select_type(self, chain: ChainType) -> "WalletCreator":
        self._require(CreationState.IDLE)
        if not isinstance(chain, ChainType):
            raise InvalidChainType(f"Unsupported chain: {chain!r}")
        self.keys.for_chain(chain)
        self.chain = chain
        self.state = CreationState.TYPE_SELECTED
        return self

    # ── TYPE_SELECTED -> KEY_ESTABLISHED ──────────────────

    def generate_key(self) -> "WalletCreator":
        self._require(CreationState.TYPE_SELECTED)
        return self._establish(self.keys.generate_private_key(self.chain))

    def use_private_key(self, private_key: str | bytes) -> "WalletCreator":
        """Raises MalformedKey before anything else happens."""
        self._require(CreationState.TYPE_SELECTED)
        return self._establish(parse_private_key(private_key))

    def use_keystore(self, keystore: str, expected_address: str | None = None) -> "WalletCreator":
        """
        Adopt an already-encrypted keystore (bundle or keystore file).
        The stored blob is kept as-is; its address must match `expected_address`.
        """
        self._require(CreationState.TYPE_SELECTED)
        address = self.keys.keystore_address(self.chain, keystore)
        if expected_address and address != normalize_address(expected_address, self.chain):
            raise MalformedKeystore("Keystore address does not match the bundle entry")
        self.address = address
        self._keystore = keystore
        self.state = CreationState.KEY_ESTABLISHED
        return self

    def _establish(self, private_key: bytes) -> "WalletCreator":
        self._private_key = private_key
        self.address = self.keys.derive_address(self.chain, private_key)
        self.state = CreationState.KEY_ESTABLISHED
        return self

    # ── KEY_ESTABLISHED -> PERSISTED ──────────────────────

    def check_unique(self, alias: str):
        """Raises DuplicateAlias / DuplicateAddress without touching the store."""
        self._require(CreationState.KEY_ESTABLISHED)
        if self.store.exists_by_name(alias):
            raise DuplicateAlias(f"Wallet name already used: {alias}")
        if self.store.exists_by_address(self.address, self.chain):
            raise DuplicateAddress(f"Wallet already exists: {self.address}")

    def persist(
        self,
        alias: str,
        password: str | None = None,
        tokens: list[TokenInfo] | None = None,
        created_at: datetime | None = None,
    ) -> WalletRecord:
        """
        Encrypt (unless a keystore was adopted) and write the record.
        `password` is required when the key came from generate_key or
        use_private_key.
        """
        self.check_unique(alias)

        keystore = self._keystore
        if keystore is None:
            keystore = self.keys.encrypt_keystore(self.chain, self._private_key, password or "")

        record = WalletRecord(
            alias=alias,
            address=self.address,
            chain=self.chain,
            keystore=keystore,
            tokens=self._own_tokens(tokens or []),
        )
        if created_at is not None:
            record.created_at = created_at

        self.store.put_wallet(record)
        self._private_key = None
        self.state = CreationState.PERSISTED
        return record

    def _own_tokens(self, tokens: list[TokenInfo]) -> list[TokenInfo]:
        """Bind tokens to this wallet; a contract listed twice keeps its first entry."""
        owned = {}
        for token in tokens:
            token.depended_address = self.address
            token.parent_type = self.chain
            owned.setdefault(token.contract_address.lower(), token)
        return list(owned.values())

    def abort(self):
        """Back to IDLE. Nothing was written, nothing is kept."""
        self._private_key = None
        self._keystore = None
        self.address = None
        self.chain = None
        self.state = CreationState.IDLE
