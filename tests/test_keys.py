#!/usr/bin/env python3
"""
IXWALLET - Key Material Tests

Key parsing, address derivation, keystore round trips and the
wrong-password / malformed-keystore distinction.

Run with: pytest tests/test_keys.py -v
"""

import json

import pytest

from ixwallet.config import ChainType
from ixwallet.core.keys import SECP256K1_N, KeyMaterial, load_keystore_json, parse_private_key
from ixwallet.core.models import infer_chain, normalize_address
from ixwallet.exceptions import (
    KeyDerivationError,
    KeystoreError,
    MalformedKey,
    MalformedKeystore,
    WrongPasswordError,
)

KEY_ONE = "00" * 31 + "01"
KEY_ONE_ETH_ADDRESS = "0x7e5f4552091a69125d5dfcb7b8c2659029395bdf"


class TestParsePrivateKey:
    def test_hex_with_and_without_prefix(self):
        assert parse_private_key(KEY_ONE) == parse_private_key("0x" + KEY_ONE.upper())

    def test_bytes_pass_through(self):
        raw = bytes.fromhex(KEY_ONE)
        assert parse_private_key(raw) == raw

    @pytest.mark.parametrize(
        "bad",
        [
            "",
            "zz" * 32,
            "01" * 31,
            "00" * 32,
            format(SECP256K1_N, "064x"),
            b"\x01" * 31,
        ],
    )
    def test_rejects_malformed(self, bad):
        with pytest.raises(MalformedKey):
            parse_private_key(bad)


class TestAddressDerivation:
    def test_eth_known_vector(self, keys):
        assert keys.derive_address(ChainType.ETH, KEY_ONE) == KEY_ONE_ETH_ADDRESS

    def test_icx_shape(self, keys):
        address = keys.derive_address(ChainType.ICX, KEY_ONE)
        assert address.startswith("hx")
        assert len(address) == 42
        assert address == address.lower()

    def test_chains_differ_for_same_key(self, keys):
        icx = keys.derive_address(ChainType.ICX, KEY_ONE)
        eth = keys.derive_address(ChainType.ETH, KEY_ONE)
        assert icx[2:] != eth[2:]

    def test_generated_keys_are_valid_and_distinct(self, keys):
        first = keys.generate_private_key(ChainType.ICX)
        second = keys.generate_private_key(ChainType.ICX)
        assert first != second
        assert parse_private_key(first) == first


class TestNormalization:
    def test_eth_prefix_and_case(self):
        assert normalize_address("0xABCDEF", ChainType.ETH) == normalize_address("abcdef", ChainType.ETH)

    def test_icx_prefix_and_case(self):
        assert normalize_address("hxABCDEF", ChainType.ICX) == "hxabcdef"
        assert normalize_address("ABCDEF", ChainType.ICX) == "hxabcdef"

    def test_icx_contract_address_kept(self):
        assert normalize_address("CX00AA", ChainType.ICX) == "cx00aa"

    def test_infer_chain(self):
        assert infer_chain("hx1234") == ChainType.ICX
        assert infer_chain("0x1234") == ChainType.ETH


class TestKeystore:
    @pytest.mark.parametrize("chain", [ChainType.ICX, ChainType.ETH])
    def test_round_trip(self, keys, chain):
        private_key = keys.generate_private_key(chain)
        blob = keys.encrypt_keystore(chain, private_key, "pw1234")
        assert keys.decrypt_keystore(chain, blob, "pw1234") == private_key

    @pytest.mark.parametrize("chain", [ChainType.ICX, ChainType.ETH])
    def test_keystore_address_matches_derivation(self, keys, chain):
        blob = keys.encrypt_keystore(chain, KEY_ONE, "pw1234")
        assert keys.keystore_address(chain, blob) == keys.derive_address(chain, KEY_ONE)

    def test_icx_keystore_tagged(self, keys):
        data = json.loads(keys.encrypt_keystore(ChainType.ICX, KEY_ONE, "pw1234"))
        assert data["coinType"] == "icx"
        assert data["address"].startswith("hx")
        assert data["crypto"]["kdf"] == "scrypt"

    def test_detect_chain(self, keys):
        icx = keys.encrypt_keystore(ChainType.ICX, KEY_ONE, "pw1234")
        eth = keys.encrypt_keystore(ChainType.ETH, KEY_ONE, "pw1234")
        assert KeyMaterial.detect_chain(icx) == ChainType.ICX
        assert KeyMaterial.detect_chain(eth) == ChainType.ETH

    def test_wrong_password(self, keys):
        blob = keys.encrypt_keystore(ChainType.ICX, KEY_ONE, "pw1234")
        with pytest.raises(WrongPasswordError):
            keys.decrypt_keystore(ChainType.ICX, blob, "nope")

    def test_wrong_password_is_a_keystore_error(self, keys):
        blob = keys.encrypt_keystore(ChainType.ETH, KEY_ONE, "pw1234")
        with pytest.raises(KeystoreError):
            keys.decrypt_keystore(ChainType.ETH, blob, "nope")

    def test_empty_password_rejected(self, keys):
        with pytest.raises(KeyDerivationError):
            keys.encrypt_keystore(ChainType.ETH, KEY_ONE, "")

    def test_re_encrypt(self, keys):
        blob = keys.encrypt_keystore(ChainType.ICX, KEY_ONE, "old")
        new_blob = keys.re_encrypt(ChainType.ICX, blob, "old", "new")
        assert keys.decrypt_keystore(ChainType.ICX, new_blob, "new") == bytes.fromhex(KEY_ONE)

    def test_tampered_address_is_malformed(self, keys):
        data = json.loads(keys.encrypt_keystore(ChainType.ICX, KEY_ONE, "pw1234"))
        data["address"] = "hx" + "00" * 20
        with pytest.raises(MalformedKeystore):
            keys.decrypt_keystore(ChainType.ICX, json.dumps(data), "pw1234")


class TestLoadKeystoreJson:
    @pytest.mark.parametrize(
        "blob",
        [
            "not json",
            "[]",
            json.dumps({"version": 3, "address": "ab"}),
            json.dumps({"version": 3, "address": "ab", "crypto": {"cipher": "aes-128-ctr"}}),
        ],
    )
    def test_structural_problems(self, blob):
        with pytest.raises(MalformedKeystore):
            load_keystore_json(blob)

    def test_capitalized_crypto_accepted(self, keys):
        data = json.loads(keys.encrypt_keystore(ChainType.ETH, KEY_ONE, "pw1234"))
        data["Crypto"] = data.pop("crypto")
        assert "crypto" in load_keystore_json(json.dumps(data))

    def test_unsupported_version(self, keys):
        data = json.loads(keys.encrypt_keystore(ChainType.ETH, KEY_ONE, "pw1234"))
        data["version"] = 1
        with pytest.raises(MalformedKeystore):
            load_keystore_json(json.dumps(data))
