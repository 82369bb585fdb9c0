#!/usr/bin/env python3
"""
IXWALLET - Key Material

Key generation, address derivation and keystore encryption for each
chain. Both chains use secp256k1; they differ in address hashing and
in the keystore JSON they write.

    ICX: "hx" + last 20 bytes of SHA3-256(pubkey), scrypt/aes-128-ctr
         keystore tagged with coinType "icx"
    ETH: "0x" + last 20 bytes of Keccak-256(pubkey), standard V3 keystore
"""

import hashlib
import json
import logging
import secrets
from abc import ABC, abstractmethod

from eth_account import Account
from eth_keyfile import create_keyfile_json, decode_keyfile_json
from eth_keys import keys

from ixwallet.config import ChainType, WalletConfig
from ixwallet.core.models import normalize_address
from ixwallet.exceptions import (
    InvalidChainType,
    KeyDerivationError,
    MalformedKey,
    MalformedKeystore,
    WrongPasswordError,
)

logger = logging.getLogger(__name__)

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

_REQUIRED_CRYPTO_FIELDS = ("cipher", "cipherparams", "ciphertext", "kdf", "kdfparams", "mac")


def parse_private_key(private_key: str | bytes) -> bytes:
    """Accept raw bytes or a (0x-)hex string; reject anything off the curve."""
    if isinstance(private_key, str):
        text = private_key.strip()
        if text.lower().startswith("0x"):
            text = text[2:]
        if len(text) != 64:
            raise MalformedKey("Private key must be 32 bytes of hex")
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise MalformedKey(f"Private key is not hex: {e}") from e
    elif isinstance(private_key, (bytes, bytearray)):
        raw = bytes(private_key)
    else:
        raise MalformedKey(f"Unsupported private key type: {type(private_key).__name__}")

    if len(raw) != 32:
        raise MalformedKey("Private key must be 32 bytes")
    if not 0 < int.from_bytes(raw, "big") < SECP256K1_N:
        raise MalformedKey("Private key out of secp256k1 range")
    return raw


def load_keystore_json(blob: str | bytes) -> dict:
    """Decode and shape-check a V3 keystore without touching the password."""
    try:
        data = json.loads(blob)
    except (TypeError, ValueError) as e:
        raise MalformedKeystore(f"Keystore is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedKeystore("Keystore must be a JSON object")
    if "crypto" not in data and "Crypto" in data:
        data["crypto"] = data.pop("Crypto")

    crypto = data.get("crypto")
    if not isinstance(crypto, dict):
        raise MalformedKeystore("Keystore has no crypto section")
    missing = [name for name in _REQUIRED_CRYPTO_FIELDS if name not in crypto]
    if missing:
        raise MalformedKeystore(f"Keystore crypto section missing: {', '.join(missing)}")
    if data.get("version") != 3:
        raise MalformedKeystore(f"Unsupported keystore version: {data.get('version')}")
    if not isinstance(data.get("address"), str) or not data["address"]:
        raise MalformedKeystore("Keystore has no address")
    return data


class ChainKeys(ABC):
    """Key capabilities every supported chain provides."""

    chain: ChainType

    def __init__(self, scrypt_n: int):
        self.scrypt_n = scrypt_n

    @abstractmethod
    def derive_address(self, private_key: bytes) -> str:
        """Canonical prefixed address for a private key."""

    @abstractmethod
    def _build_keystore(self, private_key: bytes, password: str) -> dict:
        """Chain-native keystore document."""

    def encrypt_keystore(self, private_key: bytes, password: str) -> str:
        if not password:
            raise KeyDerivationError("Password must not be empty")
        try:
            document = self._build_keystore(private_key, password)
        except (ValueError, TypeError) as e:
            raise KeyDerivationError(f"Keystore encryption failed: {e}") from e
        return json.dumps(document)

    def decrypt_keystore(self, blob: str | bytes, password: str) -> bytes:
        data = load_keystore_json(blob)
        try:
            private_key = decode_keyfile_json(data, password.encode("utf-8"))
        except ValueError as e:
            if "MAC mismatch" in str(e):
                raise WrongPasswordError("Password does not open this keystore") from e
            raise MalformedKeystore(f"Keystore could not be decoded: {e}") from e
        except (KeyError, TypeError) as e:
            raise MalformedKeystore(f"Keystore could not be decoded: {e}") from e

        stored = normalize_address(data["address"], self.chain)
        if stored != self.derive_address(private_key):
            raise MalformedKeystore("Keystore address does not match its key")
        return private_key

    def keystore_address(self, blob: str | bytes) -> str:
        return normalize_address(load_keystore_json(blob)["address"], self.chain)


class IconKeys(ChainKeys):
    chain = ChainType.ICX

    def derive_address(self, private_key: bytes) -> str:
        public_key = keys.PrivateKey(private_key).public_key.to_bytes()
        return "hx" + hashlib.sha3_256(public_key).digest()[-20:].hex()

    def _build_keystore(self, private_key: bytes, password: str) -> dict:
        document = create_keyfile_json(
            private_key,
            password.encode("utf-8"),
            kdf="scrypt",
            iterations=self.scrypt_n,
        )
        document["address"] = self.derive_address(private_key)
        document["coinType"] = "icx"
        return document


class EthereumKeys(ChainKeys):
    chain = ChainType.ETH

    def derive_address(self, private_key: bytes) -> str:
        return Account.from_key(private_key).address.lower()

    def _build_keystore(self, private_key: bytes, password: str) -> dict:
        return Account.encrypt(private_key, password, kdf="scrypt", iterations=self.scrypt_n)


class KeyMaterial:
    """
    Dispatches key operations to the chain variant.
    Never logs, stores or returns a key except to its caller.
    """

    def __init__(self, config: WalletConfig):
        self._icx = IconKeys(config.icx_scrypt_n)
        self._eth = EthereumKeys(config.eth_scrypt_n)

    def for_chain(self, chain: ChainType) -> ChainKeys:
        if chain == ChainType.ICX:
            return self._icx
        if chain == ChainType.ETH:
            return self._eth
        raise InvalidChainType(f"Unsupported chain: {chain!r}")

    def generate_private_key(self, chain: ChainType) -> bytes:
        self.for_chain(chain)
        while True:
            candidate = secrets.token_bytes(32)
            if 0 < int.from_bytes(candidate, "big") < SECP256K1_N:
                return candidate

    def derive_address(self, chain: ChainType, private_key: str | bytes) -> str:
        return self.for_chain(chain).derive_address(parse_private_key(private_key))

    def encrypt_keystore(self, chain: ChainType, private_key: str | bytes, password: str) -> str:
        return self.for_chain(chain).encrypt_keystore(parse_private_key(private_key), password)

    def decrypt_keystore(self, chain: ChainType, blob: str | bytes, password: str) -> bytes:
        return self.for_chain(chain).decrypt_keystore(blob, password)

    def re_encrypt(
        self, chain: ChainType, blob: str, old_password: str, new_password: str
    ) -> str:
        """Decrypt-then-encrypt. Returns a new blob; the old one is untouched."""
        private_key = self.decrypt_keystore(chain, blob, old_password)
        return self.encrypt_keystore(chain, private_key, new_password)

    def keystore_address(self, chain: ChainType, blob: str | bytes) -> str:
        return self.for_chain(chain).keystore_address(blob)

    @staticmethod
    def detect_chain(blob: str | bytes) -> ChainType:
        """ICX keystores carry a coinType or an hx address; everything else is ETH."""
        data = load_keystore_json(blob)
        if data.get("coinType") is not None or data["address"].lower().startswith("hx"):
            return ChainType.ICX
        return ChainType.ETH
