#!/usr/bin/env python3
"""
IXWALLET - Backup Bundle Format Tests

Run with: pytest tests/test_bundle.py -v
"""

import json

import pytest

from ixwallet.config import ChainType
from ixwallet.core.bundle import decode_bundle, encode_bundle, entry_from_record
from ixwallet.core.models import TokenInfo, WalletRecord
from ixwallet.exceptions import MalformedBundle

ICX_ADDRESS = "hx" + "ab" * 20
ETH_ADDRESS = "0x" + "cd" * 20

TOKEN_JSON = {
    "address": "0x" + "11" * 20,
    "createdAt": "2019-03-01T10:00:00",
    "decimals": 6,
    "defaultDecimals": 6,
    "defaultName": "Tether",
    "name": "My Tether",
    "defaultSymbol": "USDT",
    "symbol": "USDT",
}


def _bundle(*entries) -> str:
    return json.dumps(list(entries))


class TestDecodeBundle:
    def test_minimal_entry(self):
        entries = decode_bundle(_bundle({ICX_ADDRESS: {"name": "a", "type": "icx", "priv": "{}"}}))
        assert len(entries) == 1
        assert entries[0].chain == ChainType.ICX
        assert entries[0].tokens is None
        assert entries[0].normalized_address == ICX_ADDRESS

    def test_full_entry_with_tokens(self):
        raw = _bundle(
            {
                ETH_ADDRESS.upper().replace("0X", "0x"): {
                    "name": "b",
                    "type": "ETH",
                    "priv": "{}",
                    "tokens": [TOKEN_JSON],
                    "createdAt": "2019-03-01T09:00:00",
                    "coinType": "eth",
                }
            }
        )
        (entry,) = decode_bundle(raw.encode("utf-8"))
        assert entry.chain == ChainType.ETH
        assert entry.normalized_address == ETH_ADDRESS
        assert entry.tokens[0].symbol == "USDT"

        record = entry.to_record()
        assert record.alias == "b"
        assert record.created_at.year == 2019
        assert record.tokens[0].depended_address == ETH_ADDRESS
        assert record.tokens[0].parent_type == ChainType.ETH

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "{}",
            "[]",
            json.dumps(["x"]),
            json.dumps([{ICX_ADDRESS: {"name": "a", "type": "icx"}}]),
            json.dumps([{ICX_ADDRESS: {"name": "a", "type": "btc", "priv": "{}"}}]),
            json.dumps([{ICX_ADDRESS: {"name": 5, "type": "icx", "priv": "{}"}}]),
            json.dumps([{ICX_ADDRESS: {"name": "a", "type": "icx", "priv": "{}", "tokens": {}}}]),
            json.dumps([{ICX_ADDRESS: "not an object"}]),
            json.dumps([{ICX_ADDRESS: {}, ETH_ADDRESS: {}}]),
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(MalformedBundle):
            decode_bundle(raw)

    def test_boolean_decimals_rejected(self):
        token = dict(TOKEN_JSON, decimals=True)
        raw = _bundle({ETH_ADDRESS: {"name": "b", "type": "eth", "priv": "{}", "tokens": [token]}})
        with pytest.raises(MalformedBundle):
            decode_bundle(raw)


class TestEncodeBundle:
    def test_export_shape_reimports(self):
        record = WalletRecord(
            alias="main",
            address=ETH_ADDRESS,
            chain=ChainType.ETH,
            keystore="{}",
            tokens=[
                TokenInfo(
                    name="Tether",
                    symbol="USDT",
                    decimal=6,
                    depended_address=ETH_ADDRESS,
                    contract_address="0x" + "11" * 20,
                    parent_type=ChainType.ETH,
                )
            ],
        )
        encoded = encode_bundle([entry_from_record(record, '{"k": 1}')])

        document = json.loads(encoded)
        body = document[0][ETH_ADDRESS]
        assert body["type"] == "eth"
        assert body["priv"] == '{"k": 1}'
        assert set(body["tokens"][0]) == set(TOKEN_JSON)

        (entry,) = decode_bundle(encoded)
        assert entry.name == "main"
        assert entry.tokens[0].default_name == "Tether"

    def test_wallet_without_tokens_omits_list(self):
        record = WalletRecord(alias="a", address=ICX_ADDRESS, chain=ChainType.ICX, keystore="{}")
        body = json.loads(encode_bundle([entry_from_record(record, "{}")]))[0][ICX_ADDRESS]
        assert "tokens" not in body
        assert body["coinType"] == "icx"
