#!/usr/bin/env python3
"""
IXWALLET - Address Book and Transaction History

Named counter-parties and the record of what this wallet has sent.
"""

from ixwallet.config import ChainType
from ixwallet.core.models import AddressBookEntry, TransactionRecord, infer_chain, normalize_address
from ixwallet.data.database import WalletStore
from ixwallet.exceptions import DuplicateName
from ixwallet.logger import WalletLogger


class AddressBook:
    """Names are unique across the whole book, addresses too."""

    def __init__(self, store: WalletStore, logger: WalletLogger):
        self.store = store
        self.logger = logger

    def can_save(self, name: str) -> bool:
        return not self.store.address_book_has_name(name)

    def can_save_address(self, address: str) -> bool:
        return not self.store.address_book_has_address(address)

    def add(self, name: str, address: str, chain: ChainType | None = None) -> AddressBookEntry:
        if not self.can_save(name):
            raise DuplicateName(f"Address book name already used: {name}")
        chain = chain or infer_chain(address)
        normalized = normalize_address(address, chain)
        if not self.can_save_address(normalized):
            raise DuplicateName(f"Address already in the address book: {normalized}")

        entry = AddressBookEntry(name=name, address=normalized, chain=chain)
        self.store.put_address_book(entry)
        self.logger.debug(f"Address book entry added: {name} {self.logger.short(normalized)}")
        return entry

    def rename(self, old_name: str, new_name: str):
        if old_name == new_name:
            return
        if not self.can_save(new_name):
            raise DuplicateName(f"Address book name already used: {new_name}")
        self.store.rename_address_book(old_name, new_name)

    def list(self, chain: ChainType) -> list[AddressBookEntry]:
        return self.store.list_address_book(chain)

    def delete(self, name: str) -> bool:
        return self.store.delete_address_book(name)


class TransactionHistory:
    """Sent transactions, newest first."""

    def __init__(self, store: WalletStore):
        self.store = store

    def save(
        self,
        from_address: str,
        to_address: str,
        tx_hash: str,
        value: int,
        chain: ChainType,
        token_symbol: str | None = None,
    ) -> TransactionRecord:
        record = TransactionRecord(
            tx_hash=tx_hash,
            from_address=from_address,
            to_address=to_address,
            value=hex(value),
            chain=chain,
            token_symbol=token_symbol,
        )
        self.store.put_transaction(record)
        return record

    def list_for(self, address: str) -> list[TransactionRecord]:
        return self.store.list_transactions(address=address)

    def recent(self, chain: ChainType, exclude: str | None = None) -> list[TransactionRecord]:
        """
        Latest transfers on `chain`, skipping those sent to `exclude`.
        Counter-parties that are local wallets get their wallet name attached.
        """
        excluded = exclude.lower() if exclude else None
        results = []
        for tx in self.store.list_transactions(chain=chain):
            if excluded and tx.to_address.lower() == excluded:
                continue
            tx.counterparty_name = self.store.find_wallet_name(tx.to_address) or ""
            results.append(tx)
        return results

    def mark_complete(self, tx_hash: str) -> bool:
        return self.store.mark_transaction_complete(tx_hash)
