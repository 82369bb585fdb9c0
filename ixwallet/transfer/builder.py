#!/usr/bin/env python3
"""
IXWALLET - Transaction Builder

Turns a transfer intent into a signed, chain-correct payload and
submits it.

    ICX: v3 transaction dict, serialized to the canonical signing string,
         SHA3-256 hashed, recoverable secp256k1 signature in base64
    ETH: legacy transaction signed with eth-account, raw bytes submitted

The key is checked before any network call. Signing problems raise
SigningError; chain rejections raise SubmissionError with the reason.
"""

import base64
import hashlib
import time
from dataclasses import dataclass
from typing import Any

from eth_abi import encode as abi_encode
from eth_account import Account
from eth_keys import keys
from eth_utils import to_checksum_address

from ixwallet.config import ChainType, WalletConfig
from ixwallet.core.client import EthereumClient, IconClient, parse_hex_int
from ixwallet.core.keys import KeyMaterial, parse_private_key
from ixwallet.core.models import infer_chain, normalize_address
from ixwallet.exceptions import (
    InsufficientBalance,
    InvalidChainType,
    IXWalletError,
    MalformedKey,
    NetworkError,
    SigningError,
    TransferError,
)
from ixwallet.lifecycle.address_book import TransactionHistory
from ixwallet.logger import WalletLogger
from ixwallet.sync.cache import BalanceCache

# keccak("transfer(address,uint256)")[:4]
ERC20_TRANSFER_SELECTOR = bytes.fromhex("a9059cbb")

ICX_VERSION = "0x3"
ICX_NONCE = "0x1"

_ICX_ESCAPES = str.maketrans({
    "\\": "\\\\",
    ".": "\\.",
    "{": "\\{",
    "}": "\\}",
    "[": "\\[",
    "]": "\\]",
})


@dataclass
class TokenMetadata:
    name: str
    symbol: str
    decimals: int


def serialize_icx_value(value: Any) -> str:
    if value is None:
        return "\\0"
    if isinstance(value, dict):
        return "{" + serialize_icx_params(value) + "}"
    if isinstance(value, list):
        return "[" + ".".join(serialize_icx_value(v) for v in value) + "]"
    return str(value).translate(_ICX_ESCAPES)


def serialize_icx_params(params: dict) -> str:
    return ".".join(f"{key}.{serialize_icx_value(params[key])}" for key in sorted(params))


def icx_signing_string(transaction: dict) -> str:
    """The exact text whose SHA3-256 gets signed."""
    return "icx_sendTransaction." + serialize_icx_params(transaction)


def sign_icx_transaction(transaction: dict, private_key: bytes) -> dict:
    """Copy of `transaction` with its base64 signature attached."""
    unsigned = {k: v for k, v in transaction.items() if k != "signature"}
    digest = hashlib.sha3_256(icx_signing_string(unsigned).encode("utf-8")).digest()
    try:
        signature = keys.PrivateKey(private_key).sign_msg_hash(digest)
    except Exception as e:
        raise SigningError(f"ICX signing failed: {e}") from e

    signed = dict(unsigned)
    signed["signature"] = base64.b64encode(signature.to_bytes()).decode("ascii")
    return signed


class TransactionBuilder:
    """
    Builds, signs and submits transfers on either chain.
    Successful submissions are recorded in the transaction history.
    """

    def __init__(
        self,
        config: WalletConfig,
        icon_client: IconClient,
        eth_client: EthereumClient,
        keys: KeyMaterial,
        history: TransactionHistory,
        cache: BalanceCache,
        logger: WalletLogger,
    ):
        self.config = config
        self.icon_client = icon_client
        self.eth_client = eth_client
        self.keys = keys
        self.history = history
        self.cache = cache
        self.logger = logger

    # ── Public API ────────────────────────────────────────

    async def send_native(
        self,
        chain: ChainType,
        private_key: str | bytes,
        from_address: str,
        to_address: str,
        amount: int,
        fee_limit: int | None = None,
        memo: str | None = None,
    ) -> str:
        """Transfer `amount` base units of the chain's coin. Returns the tx hash."""
        key = self._signing_key(chain, private_key, from_address)
        sender = normalize_address(from_address, chain)
        recipient = normalize_address(to_address, chain)
        self._check_amount(amount)
        self._check_balance(self.cache.get_native(sender), amount, chain.symbol)

        if chain == ChainType.ICX:
            transaction = self._icx_base(sender, recipient, fee_limit or self.config.default_step_limit)
            transaction["value"] = hex(amount)
            if memo:
                transaction["dataType"] = "message"
                transaction["data"] = "0x" + memo.encode("utf-8").hex()
            tx_hash = await self._submit_icx(transaction, key)
        elif chain == ChainType.ETH:
            data = "0x" + memo.encode("utf-8").hex() if memo else "0x"
            tx_hash = await self._submit_eth(
                key,
                sender,
                to=recipient,
                value=amount,
                data=data,
                gas=fee_limit or self.config.default_gas_limit,
            )
        else:
            raise InvalidChainType(f"Unsupported chain: {chain!r}")

        self.logger.transfer_submitted(chain.value, tx_hash, recipient, amount)
        self._record(sender, recipient, tx_hash, amount, chain)
        return tx_hash

    async def send_token(
        self,
        chain: ChainType,
        private_key: str | bytes,
        from_address: str,
        contract_address: str,
        to_address: str,
        amount: int,
        fee_limit: int | None = None,
        token_symbol: str | None = None,
    ) -> str:
        """Call `transfer(to, amount)` on a token contract. Returns the tx hash."""
        key = self._signing_key(chain, private_key, from_address)
        sender = normalize_address(from_address, chain)
        recipient = normalize_address(to_address, chain)
        contract = contract_address.lower()
        self._check_amount(amount)
        self._check_balance(self.cache.get_token(sender, contract), amount, token_symbol or contract)

        if chain == ChainType.ICX:
            transaction = self._icx_base(
                sender, contract, fee_limit or self.config.default_token_step_limit
            )
            transaction["dataType"] = "call"
            transaction["data"] = {
                "method": "transfer",
                "params": {"_to": recipient, "_value": hex(amount)},
            }
            tx_hash = await self._submit_icx(transaction, key)
        elif chain == ChainType.ETH:
            call_data = ERC20_TRANSFER_SELECTOR + abi_encode(
                ["address", "uint256"], [recipient, amount]
            )
            tx_hash = await self._submit_eth(
                key,
                sender,
                to=contract,
                value=0,
                data="0x" + call_data.hex(),
                gas=fee_limit or self.config.default_token_gas_limit,
            )
        else:
            raise InvalidChainType(f"Unsupported chain: {chain!r}")

        self.logger.transfer_submitted(chain.value, tx_hash, recipient, amount)
        self._record(sender, recipient, tx_hash, amount, chain, token_symbol)
        return tx_hash

    async def query_token_metadata(
        self, wallet_address: str, contract_address: str
    ) -> TokenMetadata:
        """
        name, decimals and symbol, one call each, in that order.
        Any failure fails the whole query.
        """
        chain = ChainType.ICX if contract_address.lower().startswith("cx") else ChainType.ETH
        client = self._client(chain)

        name = await client.call(wallet_address, contract_address, "name")
        decimals = await client.call(wallet_address, contract_address, "decimals")
        symbol = await client.call(wallet_address, contract_address, "symbol")

        if isinstance(decimals, str):
            decimals = parse_hex_int(decimals)
        if not isinstance(name, str) or not isinstance(symbol, str) or not isinstance(decimals, int):
            raise NetworkError(f"Unexpected token metadata from {contract_address}")

        return TokenMetadata(name=name, symbol=symbol, decimals=decimals)

    async def query_token_balance(self, address: str, contract_address: str) -> int | None:
        """Single balanceOf call. None on any failure; the caller picks a fallback."""
        chain = infer_chain(address)
        try:
            return await self._client(chain).get_token_balance(address, contract_address)
        except NetworkError as e:
            self.logger.debug(f"Token balance unavailable for {self.logger.short(address)}: {e}")
            return None

    # ── Helpers ───────────────────────────────────────────

    def _client(self, chain: ChainType) -> IconClient | EthereumClient:
        if chain == ChainType.ICX:
            return self.icon_client
        if chain == ChainType.ETH:
            return self.eth_client
        raise InvalidChainType(f"Unsupported chain: {chain!r}")

    def _signing_key(self, chain: ChainType, private_key: str | bytes, from_address: str) -> bytes:
        """Validate the key and that it controls `from_address`, before any I/O."""
        try:
            key = parse_private_key(private_key)
        except MalformedKey as e:
            raise SigningError(f"Cannot sign with this key: {e}") from e

        if self.keys.derive_address(chain, key) != normalize_address(from_address, chain):
            raise SigningError("Private key does not control the sending address")
        return key

    @staticmethod
    def _check_amount(amount: int):
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise TransferError(f"Transfer amount must be a positive integer, got {amount!r}")

    @staticmethod
    def _check_balance(known: int | None, amount: int, what: str):
        # Unknown balances are left for the chain to judge
        if known is not None and known < amount:
            raise InsufficientBalance(f"{what}: balance {known} is below {amount}")

    def _record(
        self,
        sender: str,
        recipient: str,
        tx_hash: str,
        amount: int,
        chain: ChainType,
        token_symbol: str | None = None,
    ):
        # The chain already accepted the transfer; the hash must reach the caller
        try:
            self.history.save(sender, recipient, tx_hash, amount, chain, token_symbol)
        except IXWalletError as e:
            self.logger.error(f"Transfer {tx_hash} submitted but not recorded in history", e)

    def _icx_base(self, sender: str, to: str, step_limit: int) -> dict:
        return {
            "version": ICX_VERSION,
            "from": sender,
            "to": to,
            "stepLimit": hex(step_limit),
            "timestamp": hex(int(time.time() * 1_000_000)),
            "nid": self.icon_client.nid,
            "nonce": ICX_NONCE,
        }

    async def _submit_icx(self, transaction: dict, key: bytes) -> str:
        signed = sign_icx_transaction(transaction, key)
        return await self.icon_client.submit_transaction(signed)

    async def _submit_eth(
        self, key: bytes, sender: str, to: str, value: int, data: str, gas: int
    ) -> str:
        nonce = await self.eth_client.get_transaction_count(sender)
        gas_price = await self.eth_client.get_gas_price()

        transaction = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "gas": gas,
            "to": to_checksum_address(to),
            "value": value,
            "data": data,
            "chainId": self.eth_client.chain_id,
        }
        try:
            signed = Account.sign_transaction(transaction, key)
        except Exception as e:
            raise SigningError(f"ETH signing failed: {e}") from e

        return await self.eth_client.submit_transaction(signed.raw_transaction)
