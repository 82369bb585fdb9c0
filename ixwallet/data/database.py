#!/usr/bin/env python3
"""
IXWALLET - Wallet Store

Persistent storage for wallets, their tokens, the address book and sent
transactions using SQLite.

Database Schema:
- wallets: keystore blob + metadata, unique alias and unique address
- tokens: per-wallet token list, ordered by insertion
- address_book: named counter-party addresses
- transactions: submitted transfers and their completion flag
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from ixwallet.config import ChainType
from ixwallet.core.models import (
    AddressBookEntry,
    TokenInfo,
    TransactionRecord,
    WalletRecord,
    infer_chain,
    normalize_address,
)
from ixwallet.exceptions import DuplicateAddress, DuplicateAlias, StoreError, WalletNotFound


class WalletStore:
    """
    SQLite store for every record the wallet keeps.
    Multi-statement writes run inside one transaction; a failure leaves
    nothing half-written.
    """

    def __init__(self, db_path: str = "ixwallet.db"):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self._initialize_db()

    def _initialize_db(self):
        """Create database and tables if they don't exist."""
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row  # Access columns by name
        self.conn.execute("PRAGMA foreign_keys = ON")

        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS wallets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alias TEXT NOT NULL UNIQUE,
                address TEXT NOT NULL UNIQUE,
                chain TEXT NOT NULL,
                keystore TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS tokens (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                wallet_id INTEGER NOT NULL,
                contract_address TEXT NOT NULL,
                name TEXT NOT NULL,
                default_name TEXT,
                symbol TEXT NOT NULL,
                default_symbol TEXT,
                decimal INTEGER NOT NULL,
                default_decimal INTEGER,
                parent_type TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (wallet_id, contract_address),
                FOREIGN KEY (wallet_id) REFERENCES wallets (id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS address_book (
                name TEXT PRIMARY KEY,
                address TEXT NOT NULL,
                chain TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                tx_hash TEXT PRIMARY KEY,
                from_address TEXT NOT NULL,
                to_address TEXT NOT NULL,
                value TEXT NOT NULL,
                chain TEXT NOT NULL,
                token_symbol TEXT,
                date TEXT NOT NULL,
                completed INTEGER DEFAULT 0
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_wallets_created
            ON wallets (created_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_transactions_from
            ON transactions (from_address)
        """)

        self.conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        cursor = self.conn.cursor()
        try:
            yield cursor
            self.conn.commit()
        except sqlite3.IntegrityError:
            self.conn.rollback()
            raise
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            self.conn.rollback()
            raise

    # ═══════════════════════════════════════════════════════════════════════
    #                           WALLET OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    def list_wallets(self) -> List[WalletRecord]:
        """All wallets, newest first."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM wallets ORDER BY created_at DESC, id DESC")
        return [self._row_to_wallet(row) for row in cursor.fetchall()]

    def get_wallet(self, key: str) -> Optional[WalletRecord]:
        """Look up by alias first, then by (prefix/case-insensitive) address."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM wallets WHERE alias = ?", (key,))
        row = cursor.fetchone()
        if row is None:
            cursor.execute(
                "SELECT * FROM wallets WHERE address = ?",
                (normalize_address(key, infer_chain(key)),),
            )
            row = cursor.fetchone()
        return self._row_to_wallet(row) if row else None

    def exists_by_name(self, alias: str) -> bool:
        cursor = self.conn.cursor()
        cursor.execute("SELECT 1 FROM wallets WHERE alias = ?", (alias,))
        return cursor.fetchone() is not None

    def exists_by_address(self, address: str, chain: Optional[ChainType] = None) -> bool:
        normalized = normalize_address(address, chain or infer_chain(address))
        cursor = self.conn.cursor()
        cursor.execute("SELECT 1 FROM wallets WHERE address = ?", (normalized,))
        return cursor.fetchone() is not None

    def put_wallet(self, record: WalletRecord) -> int:
        """
        Insert a wallet and its tokens atomically.
        Uniqueness races surface as DuplicateAlias / DuplicateAddress.
        """
        try:
            with self._transaction() as cursor:
                cursor.execute("""
                    INSERT INTO wallets (alias, address, chain, keystore, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    record.alias,
                    record.address,
                    record.chain.value,
                    record.keystore,
                    record.created_at.isoformat(),
                ))
                wallet_id = cursor.lastrowid
                self._insert_tokens(cursor, wallet_id, record.tokens)
                return wallet_id
        except sqlite3.IntegrityError as e:
            if "wallets.alias" in str(e):
                raise DuplicateAlias(f"Wallet name already used: {record.alias}") from e
            if "wallets.address" in str(e):
                raise DuplicateAddress(f"Wallet already exists: {record.address}") from e
            raise StoreError(f"Wallet {record.alias} not stored: {e}") from e

    def delete_wallet(self, record: WalletRecord) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM wallets WHERE address = ?", (record.address,))
            return cursor.rowcount > 0

    def rename_wallet(self, old_alias: str, new_alias: str) -> None:
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    "UPDATE wallets SET alias = ? WHERE alias = ?", (new_alias, old_alias)
                )
                if cursor.rowcount == 0:
                    raise WalletNotFound(f"No wallet named {old_alias}")
        except sqlite3.IntegrityError as e:
            raise DuplicateAlias(f"Wallet name already used: {new_alias}") from e

    def update_password(self, record: WalletRecord, new_keystore: str) -> None:
        """Swap the keystore blob in a single UPDATE; never partially visible."""
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE wallets SET keystore = ? WHERE address = ?",
                (new_keystore, record.address),
            )
            if cursor.rowcount == 0:
                raise WalletNotFound(f"No wallet at {record.address}")

    def replace_tokens(self, record: WalletRecord) -> None:
        try:
            with self._transaction() as cursor:
                wallet_id = self._wallet_id(cursor, record.address)
                cursor.execute("DELETE FROM tokens WHERE wallet_id = ?", (wallet_id,))
                self._insert_tokens(cursor, wallet_id, record.tokens)
        except sqlite3.IntegrityError as e:
            raise StoreError(f"Tokens of {record.alias} not stored: {e}") from e

    def wallet_types(self) -> List[str]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT DISTINCT chain FROM wallets ORDER BY chain")
        return [row["chain"] for row in cursor.fetchall()]

    def find_wallet_name(self, address: str) -> Optional[str]:
        record = self.get_wallet(address)
        return record.alias if record else None

    # ═══════════════════════════════════════════════════════════════════════
    #                         ADDRESS BOOK OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    def list_address_book(self, chain: ChainType) -> List[AddressBookEntry]:
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM address_book WHERE chain = ?
            ORDER BY created_at DESC
        """, (chain.value,))
        return [
            AddressBookEntry(
                name=row["name"],
                address=row["address"],
                chain=ChainType(row["chain"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in cursor.fetchall()
        ]

    def address_book_has_name(self, name: str) -> bool:
        cursor = self.conn.cursor()
        cursor.execute("SELECT 1 FROM address_book WHERE name = ?", (name,))
        return cursor.fetchone() is not None

    def address_book_has_address(self, address: str) -> bool:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT 1 FROM address_book WHERE lower(address) = ?", (address.lower(),)
        )
        return cursor.fetchone() is not None

    def put_address_book(self, entry: AddressBookEntry) -> None:
        with self._transaction() as cursor:
            cursor.execute("""
                INSERT INTO address_book (name, address, chain, created_at)
                VALUES (?, ?, ?, ?)
            """, (entry.name, entry.address, entry.chain.value, entry.created_at.isoformat()))

    def rename_address_book(self, old_name: str, new_name: str) -> None:
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE address_book SET name = ? WHERE name = ?", (new_name, old_name)
            )

    def delete_address_book(self, name: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM address_book WHERE name = ?", (name,))
            return cursor.rowcount > 0

    # ═══════════════════════════════════════════════════════════════════════
    #                         TRANSACTION HISTORY
    # ═══════════════════════════════════════════════════════════════════════

    def put_transaction(self, tx: TransactionRecord) -> None:
        with self._transaction() as cursor:
            cursor.execute("""
                INSERT OR REPLACE INTO transactions (
                    tx_hash, from_address, to_address, value,
                    chain, token_symbol, date, completed
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                tx.tx_hash,
                tx.from_address,
                tx.to_address,
                tx.value,
                tx.chain.value,
                tx.token_symbol,
                tx.date.isoformat(),
                int(tx.completed),
            ))

    def list_transactions(
        self,
        address: Optional[str] = None,
        chain: Optional[ChainType] = None,
    ) -> List[TransactionRecord]:
        """Sent transactions, newest first, filtered by sender and/or chain."""
        query = "SELECT * FROM transactions WHERE 1 = 1"
        params = []

        if address:
            query += " AND lower(from_address) = ?"
            params.append(address.lower())

        if chain:
            query += " AND chain = ?"
            params.append(chain.value)

        query += " ORDER BY date DESC"

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return [self._row_to_transaction(row) for row in cursor.fetchall()]

    def mark_transaction_complete(self, tx_hash: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE transactions SET completed = 1 WHERE tx_hash = ?", (tx_hash,)
            )
            return cursor.rowcount > 0

    # ── Helpers ───────────────────────────────────────────

    @staticmethod
    def _wallet_id(cursor: sqlite3.Cursor, address: str) -> int:
        cursor.execute("SELECT id FROM wallets WHERE address = ?", (address,))
        row = cursor.fetchone()
        if row is None:
            raise WalletNotFound(f"No wallet at {address}")
        return row["id"]

    @staticmethod
    def _insert_tokens(cursor: sqlite3.Cursor, wallet_id: int, tokens: List[TokenInfo]):
        for token in tokens:
            cursor.execute("""
                INSERT INTO tokens (
                    wallet_id, contract_address, name, default_name,
                    symbol, default_symbol, decimal, default_decimal,
                    parent_type, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                wallet_id,
                token.contract_address,
                token.name,
                token.default_name,
                token.symbol,
                token.default_symbol,
                token.decimal,
                token.default_decimal,
                token.parent_type.value,
                token.created_at.isoformat(),
            ))

    def _load_tokens(self, wallet_id: int, address: str) -> List[TokenInfo]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM tokens WHERE wallet_id = ? ORDER BY id", (wallet_id,))
        return [
            TokenInfo(
                name=row["name"],
                symbol=row["symbol"],
                decimal=row["decimal"],
                depended_address=address,
                contract_address=row["contract_address"],
                parent_type=ChainType(row["parent_type"]),
                default_name=row["default_name"] or "",
                default_symbol=row["default_symbol"] or "",
                default_decimal=row["default_decimal"] or 0,
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in cursor.fetchall()
        ]

    def _row_to_wallet(self, row) -> WalletRecord:
        """Convert database row to WalletRecord object."""
        return WalletRecord(
            alias=row["alias"],
            address=row["address"],
            chain=ChainType(row["chain"]),
            keystore=row["keystore"],
            tokens=self._load_tokens(row["id"], row["address"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_transaction(row) -> TransactionRecord:
        return TransactionRecord(
            tx_hash=row["tx_hash"],
            from_address=row["from_address"],
            to_address=row["to_address"],
            value=row["value"],
            chain=ChainType(row["chain"]),
            token_symbol=row["token_symbol"],
            date=datetime.fromisoformat(row["date"]),
            completed=bool(row["completed"]),
        )

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
