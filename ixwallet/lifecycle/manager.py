#!/usr/bin/env python3
"""
IXWALLET - Wallet Lifecycle Manager

Create, import, rename, re-password, delete and export wallets.

No two stored wallets share a name or a (normalized) address. Every
operation here either finishes or leaves the store as it found it;
bundle import is the one place where partial success is the point.
"""

import asyncio
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from ixwallet.config import ChainType, WalletConfig
from ixwallet.core.bundle import BundleEntry, decode_bundle, encode_bundle, entry_from_record
from ixwallet.core.keys import KeyMaterial
from ixwallet.core.models import TokenInfo, WalletRecord
from ixwallet.data.database import WalletStore
from ixwallet.exceptions import (
    DuplicateAlias,
    DuplicateWalletError,
    InvalidChainType,
    IXWalletError,
    KeystoreError,
    MalformedKey,
    MalformedKeystore,
    StoreError,
    WalletNotFound,
)
from ixwallet.lifecycle.creator import WalletCreator
from ixwallet.logger import WalletLogger
from ixwallet.sync.cache import BalanceCache


@dataclass
class BundleImportResult:
    """What commit_bundle admitted and what it skipped (address, reason)."""
    admitted: list[WalletRecord] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.admitted)


@dataclass
class ExportItem:
    """A wallet picked for export together with its unlocked key."""
    record: WalletRecord
    private_key: bytes


def zulu_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S.") + f"{now.microsecond // 1000:03d}Z"


class WalletLifecycleManager:
    """
    Owns the in-memory wallet list; reloads it from the store after
    every change.
    """

    def __init__(
        self,
        config: WalletConfig,
        store: WalletStore,
        keys: KeyMaterial,
        cache: BalanceCache,
        logger: WalletLogger,
    ):
        self.config = config
        self.store = store
        self.keys = keys
        self.cache = cache
        self.logger = logger
        self._wallets: list[WalletRecord] = []
        self.reload()

    # ── Listing ───────────────────────────────────────────

    def reload(self) -> list[WalletRecord]:
        """Re-read every wallet from the store, newest first."""
        self._wallets = self.store.list_wallets()
        return self._wallets

    @property
    def wallets(self) -> list[WalletRecord]:
        return list(self._wallets)

    def wallet_types(self) -> list[str]:
        return self.store.wallet_types()

    def wallets_by_chain(self, chain: ChainType) -> list[WalletRecord]:
        return [w for w in self._wallets if w.chain == chain]

    def load_wallet(self, key: str) -> WalletRecord | None:
        """Wallet by alias or address, with its cached native balance attached."""
        record = self.store.get_wallet(key)
        if record is not None:
            record.balance = self.cache.get_native(record.address)
        return record

    def can_save_alias(self, alias: str) -> bool:
        return not self.store.exists_by_name(alias)

    def can_save_address(self, address: str, chain: ChainType | None = None) -> bool:
        return not self.store.exists_by_address(address, chain)

    def new_creator(self) -> WalletCreator:
        return WalletCreator(self.keys, self.store)

    def _admitted(self, record: WalletRecord):
        self.logger.wallet_created(record.alias, record.address, record.chain.value)

    # ── Create / import ───────────────────────────────────

    def create_wallet(self, chain: ChainType, alias: str, password: str) -> WalletRecord:
        """Fresh key, encrypted under `password`, persisted."""
        creator = self.new_creator()
        try:
            creator.select_type(chain).generate_key()
            record = creator.persist(alias, password)
        except Exception:
            creator.abort()
            raise

        self._admitted(record)
        self.reload()
        return record

    def import_from_private_key(
        self, chain: ChainType, alias: str, private_key: str | bytes, password: str
    ) -> WalletRecord:
        creator = self.new_creator()
        try:
            creator.select_type(chain).use_private_key(private_key)
            record = creator.persist(alias, password)
        except Exception:
            creator.abort()
            raise

        self._admitted(record)
        self.reload()
        return record

    def import_keystore_file(self, data: str | bytes, alias: str, password: str) -> WalletRecord:
        """
        Import a single keystore file. The chain is read from the file,
        duplicates are rejected before the (slow) decrypt, and the blob is
        stored unchanged once the password checks out.
        """
        blob = data.decode("utf-8") if isinstance(data, bytes) else data
        chain = self.keys.detect_chain(blob)

        creator = self.new_creator()
        try:
            creator.select_type(chain).use_keystore(blob)
            creator.check_unique(alias)
            self.keys.decrypt_keystore(chain, blob, password)
            record = creator.persist(alias)
        except Exception:
            creator.abort()
            raise

        self._admitted(record)
        self.reload()
        return record

    # ── Bundles ───────────────────────────────────────────

    def import_from_bundle_file(self, data: bytes | str) -> list[BundleEntry]:
        """Decode a bundle for review. Nothing is persisted."""
        entries = decode_bundle(data)
        self.logger.info(f"Bundle staged: {len(entries)} wallets")
        return entries

    def validate_bundle_entry_password(self, entry: BundleEntry, password: str) -> bytes:
        """Open one staged entry with the bundle password."""
        private_key = self.keys.decrypt_keystore(entry.chain, entry.priv, password)
        if self.keys.derive_address(entry.chain, private_key) != entry.normalized_address:
            raise MalformedKeystore("Bundle entry address does not match its key")
        return private_key

    def commit_bundle(self, entries: list[BundleEntry]) -> BundleImportResult:
        """
        Persist each entry independently. Duplicates and broken entries are
        logged and skipped; the rest are admitted.
        """
        result = BundleImportResult()

        for entry in entries:
            creator = self.new_creator()
            try:
                staged = entry.to_record()
                creator.select_type(entry.chain).use_keystore(entry.priv, entry.address)
                record = creator.persist(
                    entry.name,
                    tokens=staged.tokens,
                    created_at=staged.created_at if entry.created_at else None,
                )
            except (DuplicateWalletError, KeystoreError, InvalidChainType, StoreError) as e:
                creator.abort()
                self.logger.bundle_entry_skipped(entry.address, str(e))
                result.skipped.append((entry.address, str(e)))
                continue

            self._admitted(record)
            result.admitted.append(record)

        self.reload()
        self.logger.info(
            f"Bundle import: {len(result.admitted)} admitted, {len(result.skipped)} skipped"
        )
        return result

    def unlock(self, record: WalletRecord, password: str) -> bytes:
        """Decrypt a stored wallet's key."""
        return self.keys.decrypt_keystore(record.chain, record.keystore, password)

    async def export_bundle(
        self,
        items: list[ExportItem],
        new_password: str,
        directory: str | Path | None = None,
    ) -> Path:
        """
        Re-encrypt every item under `new_password` and write one bundle
        file into the backup directory.

        All-or-nothing: if any key fails to re-encrypt, no file is written.
        """
        entries = await asyncio.to_thread(self._build_bundle, items, new_password)
        target_dir = Path(directory or self.config.backup_dir)
        path = await asyncio.to_thread(self._write_atomic, target_dir, encode_bundle(entries))
        self.logger.info(f"Bundle exported: {len(entries)} wallets -> {path}")
        return path

    def _build_bundle(self, items: list[ExportItem], new_password: str) -> list[BundleEntry]:
        entries = []
        for item in items:
            chain = item.record.chain
            if self.keys.derive_address(chain, item.private_key) != item.record.address:
                raise MalformedKey(f"Key does not belong to \"{item.record.alias}\"")
            keystore = self.keys.encrypt_keystore(chain, item.private_key, new_password)
            origin = self.store.get_wallet(item.record.address) or item.record
            entries.append(entry_from_record(origin, keystore))
        return entries

    @staticmethod
    def _write_atomic(directory: Path, payload: bytes) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"ICONex_{zulu_timestamp()}"

        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".ICONex_", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        return path

    # ── Edit / delete ─────────────────────────────────────

    def rename_wallet(self, old_alias: str, new_alias: str):
        if old_alias == new_alias:
            return
        if self.store.exists_by_name(new_alias):
            raise DuplicateAlias(f"Wallet name already used: {new_alias}")
        self.store.rename_wallet(old_alias, new_alias)
        self.logger.info(f"Wallet renamed: \"{old_alias}\" -> \"{new_alias}\"")
        self.reload()

    def change_password(self, record: WalletRecord, old_password: str, new_password: str):
        """
        Decrypt with the old password, re-encrypt with the new one, swap
        the blob in one write. A wrong old password changes nothing.
        """
        new_keystore = self.keys.re_encrypt(
            record.chain, record.keystore, old_password, new_password
        )
        self.store.update_password(record, new_keystore)
        record.keystore = new_keystore
        self.logger.info(f"Password changed for \"{record.alias}\"")
        self.reload()

    def delete_wallet(self, record: WalletRecord) -> bool:
        """Remove from store and cache. Failures are logged, never raised."""
        try:
            if not self.store.delete_wallet(record):
                raise WalletNotFound(f"No wallet at {record.address}")
        except IXWalletError as e:
            self.logger.error(f"Delete failed for \"{record.alias}\"", e)
            return False

        self.cache.evict(record.address)
        self.logger.wallet_deleted(record.alias, record.address)
        self.reload()
        return True

    # ── Tokens ────────────────────────────────────────────

    def add_token(self, record: WalletRecord, token: TokenInfo) -> bool:
        """Attach a token to `record`. False if the contract is already listed."""
        if any(t.contract_address == token.contract_address for t in record.tokens):
            return False
        token.depended_address = record.address
        token.parent_type = record.chain
        record.tokens.append(token)
        self.store.replace_tokens(record)
        self.reload()
        return True

    def remove_token(self, record: WalletRecord, contract_address: str) -> bool:
        contract = contract_address.lower()
        remaining = [t for t in record.tokens if t.contract_address != contract]
        if len(remaining) == len(record.tokens):
            return False
        record.tokens = remaining
        self.store.replace_tokens(record)
        self.reload()
        return True

