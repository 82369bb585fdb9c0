#!/usr/bin/env python3
"""
IXWALLET - Address Book and History Tests

Run with: pytest tests/test_address_book.py -v
"""

from datetime import datetime

import pytest

from ixwallet.config import ChainType
from ixwallet.core.models import WalletRecord
from ixwallet.exceptions import DuplicateName

ICX_A = "hx" + "aa" * 20
ICX_B = "hx" + "bb" * 20
ICX_C = "hx" + "cc" * 20
ETH_A = "0x" + "dd" * 20


class TestAddressBook:
    def test_add_normalizes(self, address_book):
        entry = address_book.add("alice", "HX" + "AA" * 20)
        assert entry.address == ICX_A
        assert entry.chain == ChainType.ICX
        assert [e.name for e in address_book.list(ChainType.ICX)] == ["alice"]

    def test_eth_inferred(self, address_book):
        entry = address_book.add("bob", "0x" + ("dd" * 20).upper())
        assert entry.chain == ChainType.ETH
        assert entry.address == ETH_A

    def test_duplicate_name(self, address_book):
        address_book.add("alice", ICX_A)
        assert not address_book.can_save("alice")
        with pytest.raises(DuplicateName):
            address_book.add("alice", ICX_B)

    def test_duplicate_address(self, address_book):
        address_book.add("alice", ICX_A)
        with pytest.raises(DuplicateName):
            address_book.add("alice2", ICX_A)

    def test_rename(self, address_book):
        address_book.add("alice", ICX_A)
        address_book.add("bob", ICX_B)

        with pytest.raises(DuplicateName):
            address_book.rename("alice", "bob")

        address_book.rename("alice", "carol")
        assert sorted(e.name for e in address_book.list(ChainType.ICX)) == ["bob", "carol"]

    def test_delete(self, address_book):
        address_book.add("alice", ICX_A)
        assert address_book.delete("alice") is True
        assert address_book.delete("alice") is False
        assert address_book.can_save_address(ICX_A)


class TestTransactionHistory:
    def test_value_stored_as_hex(self, history):
        record = history.save(ICX_A, ICX_B, "0x1", 10**18, ChainType.ICX)
        assert record.value == hex(10**18)
        assert history.list_for(ICX_A)[0].tx_hash == "0x1"

    def test_recent_names_local_counterparties(self, history, store):
        store.put_wallet(
            WalletRecord(
                alias="savings",
                address=ICX_B,
                chain=ChainType.ICX,
                keystore="{}",
                created_at=datetime(2024, 1, 1),
            )
        )
        history.save(ICX_A, ICX_B, "0x1", 1, ChainType.ICX)
        history.save(ICX_A, ICX_C, "0x2", 2, ChainType.ICX)
        history.save(ETH_A, ETH_A, "0x3", 3, ChainType.ETH)

        recent = history.recent(ChainType.ICX)
        names = {tx.tx_hash: tx.counterparty_name for tx in recent}
        assert names == {"0x1": "savings", "0x2": ""}

    def test_recent_excludes_address(self, history):
        history.save(ICX_A, ICX_B, "0x1", 1, ChainType.ICX)
        history.save(ICX_A, ICX_C, "0x2", 2, ChainType.ICX)
        assert [tx.tx_hash for tx in history.recent(ChainType.ICX, exclude=ICX_B)] == ["0x2"]

    def test_mark_complete(self, history):
        history.save(ICX_A, ICX_B, "0x1", 1, ChainType.ICX)
        assert history.mark_complete("0x1") is True
        assert history.list_for(ICX_A)[0].completed is True
