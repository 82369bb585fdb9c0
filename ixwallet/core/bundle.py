#!/usr/bin/env python3
"""
IXWALLET - Backup Bundle Format

A bundle is a JSON array of single-key objects:

    [{"<address>": {"name": ..., "type": "icx"|"eth", "priv": "<keystore json>",
                    "tokens": [...], "createdAt": ..., "coinType": ...}}, ...]

Decoding validates every field before use; nothing is assumed about the
shape of the file.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime

from ixwallet.config import ChainType
from ixwallet.core.models import TokenInfo, WalletRecord, normalize_address
from ixwallet.exceptions import MalformedBundle

_TOKEN_FIELDS = {
    "address": str,
    "createdAt": str,
    "decimals": int,
    "defaultDecimals": int,
    "defaultName": str,
    "name": str,
    "defaultSymbol": str,
    "symbol": str,
}


@dataclass
class TokenExportEntry:
    address: str
    created_at: str
    decimals: int
    default_decimals: int
    default_name: str
    name: str
    default_symbol: str
    symbol: str

    @classmethod
    def from_token(cls, token: TokenInfo) -> "TokenExportEntry":
        return cls(
            address=token.contract_address,
            created_at=token.created_at.isoformat(),
            decimals=token.decimal,
            default_decimals=token.default_decimal,
            default_name=token.default_name,
            name=token.name,
            default_symbol=token.default_symbol,
            symbol=token.symbol,
        )

    def to_token(self, depended_address: str, parent_type: ChainType) -> TokenInfo:
        return TokenInfo(
            name=self.name,
            symbol=self.symbol,
            decimal=self.decimals,
            depended_address=depended_address,
            contract_address=self.address,
            parent_type=parent_type,
            default_name=self.default_name,
            default_symbol=self.default_symbol,
            default_decimal=self.default_decimals,
            created_at=_parse_timestamp(self.created_at),
        )

    def to_json(self) -> dict:
        return {
            "address": self.address,
            "createdAt": self.created_at,
            "decimals": self.decimals,
            "defaultDecimals": self.default_decimals,
            "defaultName": self.default_name,
            "name": self.name,
            "defaultSymbol": self.default_symbol,
            "symbol": self.symbol,
        }


@dataclass
class BundleEntry:
    """One wallet in a bundle. `priv` is a keystore encrypted under the bundle password."""

    address: str
    name: str
    chain: ChainType
    priv: str
    tokens: list[TokenExportEntry] | None = None
    created_at: str | None = None
    coin_type: str | None = None

    @property
    def normalized_address(self) -> str:
        return normalize_address(self.address, self.chain)

    def to_record(self) -> WalletRecord:
        address = self.normalized_address
        tokens = [t.to_token(address, self.chain) for t in self.tokens or []]
        record = WalletRecord(
            alias=self.name,
            address=address,
            chain=self.chain,
            keystore=self.priv,
            tokens=tokens,
        )
        if self.created_at:
            record.created_at = _parse_timestamp(self.created_at)
        return record

    def to_json(self) -> dict:
        body: dict = {"name": self.name, "type": self.chain.value, "priv": self.priv}
        if self.tokens is not None:
            body["tokens"] = [t.to_json() for t in self.tokens]
        if self.created_at is not None:
            body["createdAt"] = self.created_at
        if self.coin_type is not None:
            body["coinType"] = self.coin_type
        return {self.address: body}


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        # Older exports wrote epoch milliseconds
        try:
            return datetime.fromtimestamp(int(value) / 1000)
        except (ValueError, OverflowError, OSError):
            return datetime.now()


def _require(mapping: dict, key: str, kind: type, where: str):
    value = mapping.get(key)
    # bool is an int subclass; never accept it for numeric fields
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise MalformedBundle(f"{where}: field '{key}' must be {kind.__name__}")
    return value


def _optional(mapping: dict, key: str, kind: type, where: str):
    if mapping.get(key) is None:
        return None
    return _require(mapping, key, kind, where)


def _parse_token(raw, where: str) -> TokenExportEntry:
    if not isinstance(raw, dict):
        raise MalformedBundle(f"{where}: token must be an object")
    values = {key: _require(raw, key, kind, where) for key, kind in _TOKEN_FIELDS.items()}
    return TokenExportEntry(
        address=values["address"],
        created_at=values["createdAt"],
        decimals=values["decimals"],
        default_decimals=values["defaultDecimals"],
        default_name=values["defaultName"],
        name=values["name"],
        default_symbol=values["defaultSymbol"],
        symbol=values["symbol"],
    )


def _parse_entry(item, index: int) -> BundleEntry:
    where = f"entry {index}"
    if not isinstance(item, dict) or len(item) != 1:
        raise MalformedBundle(f"{where}: must be an object with exactly one address key")

    (address, body), = item.items()
    if not isinstance(body, dict):
        raise MalformedBundle(f"{where}: wallet body must be an object")

    type_name = _require(body, "type", str, where)
    try:
        chain = ChainType(type_name.lower())
    except ValueError as e:
        raise MalformedBundle(f"{where}: unknown wallet type '{type_name}'") from e

    raw_tokens = body.get("tokens")
    tokens = None
    if raw_tokens is not None:
        if not isinstance(raw_tokens, list):
            raise MalformedBundle(f"{where}: tokens must be a list")
        tokens = [_parse_token(t, where) for t in raw_tokens]

    return BundleEntry(
        address=address,
        name=_require(body, "name", str, where),
        chain=chain,
        priv=_require(body, "priv", str, where),
        tokens=tokens,
        created_at=_optional(body, "createdAt", str, where),
        coin_type=_optional(body, "coinType", str, where),
    )


def decode_bundle(data: bytes | str) -> list[BundleEntry]:
    """Parse a bundle file. Raises MalformedBundle on any shape problem."""
    try:
        document = json.loads(data)
    except (TypeError, ValueError) as e:
        raise MalformedBundle(f"Bundle is not JSON: {e}") from e

    if not isinstance(document, list) or not document:
        raise MalformedBundle("Bundle must be a non-empty JSON array")
    return [_parse_entry(item, i) for i, item in enumerate(document)]


def encode_bundle(entries: list[BundleEntry]) -> bytes:
    return json.dumps([entry.to_json() for entry in entries]).encode("utf-8")


def entry_from_record(record: WalletRecord, keystore: str) -> BundleEntry:
    """Bundle entry for a wallet whose key was re-encrypted into `keystore`."""
    return BundleEntry(
        address=record.address,
        name=record.alias,
        chain=record.chain,
        priv=keystore,
        tokens=[TokenExportEntry.from_token(t) for t in record.tokens] or None,
        created_at=record.created_at.isoformat(),
        coin_type=record.chain.value,
    )
