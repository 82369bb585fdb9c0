#!/usr/bin/env python3
"""
IXWALLET - Transaction Builder Tests

Async test suite for TransactionBuilder: key checks before any network
call, ICX serialization and signatures, ETH signing, token transfer
encoding, submission failures and token metadata queries.

Run with: pytest tests/test_transfer.py -v
"""

import base64
import hashlib
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from eth_keys import keys as eth_keys

from ixwallet.config import ChainType
from ixwallet.exceptions import (
    InsufficientBalance,
    NetworkError,
    SigningError,
    StoreError,
    SubmissionError,
    TransferError,
)
from ixwallet.transfer.builder import (
    ERC20_TRANSFER_SELECTOR,
    icx_signing_string,
    serialize_icx_value,
    sign_icx_transaction,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SENDER_KEY = bytes.fromhex("4c" * 32)
RECIPIENT_ICX = "hx" + "ee" * 20
RECIPIENT_ETH = "0x" + "ee" * 20
ICX_TOKEN = "cx" + "77" * 20
ETH_TOKEN = "0x" + "77" * 20
TX_HASH = "0x" + "ab" * 32


def _icx_address_from_signature(transaction: dict) -> str:
    unsigned = {k: v for k, v in transaction.items() if k != "signature"}
    digest = hashlib.sha3_256(icx_signing_string(unsigned).encode("utf-8")).digest()
    signature = eth_keys.Signature(base64.b64decode(transaction["signature"]))
    public_key = signature.recover_public_key_from_msg_hash(digest)
    return "hx" + hashlib.sha3_256(public_key.to_bytes()).digest()[-20:].hex()


@pytest.fixture
def icx_sender(keys):
    return keys.derive_address(ChainType.ICX, SENDER_KEY)


@pytest.fixture
def eth_sender(keys):
    return keys.derive_address(ChainType.ETH, SENDER_KEY)


@pytest.fixture
def eth_ready(eth_client):
    eth_client.get_transaction_count = AsyncMock(return_value=7)
    eth_client.get_gas_price = AsyncMock(return_value=20 * 10**9)
    eth_client.submit_transaction = AsyncMock(return_value=TX_HASH)
    return eth_client


# ---------------------------------------------------------------------------
# ICX serialization
# ---------------------------------------------------------------------------


class TestIcxSerialization:
    def test_keys_sorted(self):
        tx = {"to": "hx1", "from": "hx2", "value": "0x1"}
        assert icx_signing_string(tx) == "icx_sendTransaction.from.hx2.to.hx1.value.0x1"

    def test_nested_and_escaped(self):
        tx = {"data": {"method": "transfer", "params": {"_to": "a.b", "_value": "0x10"}}}
        assert icx_signing_string(tx) == (
            "icx_sendTransaction.data.{method.transfer.params.{_to.a\\.b._value.0x10}}"
        )

    def test_special_values(self):
        assert serialize_icx_value(None) == "\\0"
        assert serialize_icx_value(["x", "y"]) == "[x.y]"
        assert serialize_icx_value("{a}[b]\\") == "\\{a\\}\\[b\\]\\\\"

    def test_signature_recovers_sender(self, icx_sender):
        signed = sign_icx_transaction({"from": icx_sender, "to": RECIPIENT_ICX, "value": "0x1"}, SENDER_KEY)
        assert len(base64.b64decode(signed["signature"])) == 65
        assert _icx_address_from_signature(signed) == icx_sender


# ---------------------------------------------------------------------------
# Native transfers
# ---------------------------------------------------------------------------


class TestSendNative:
    @pytest.mark.asyncio
    async def test_malformed_key_never_reaches_network(self, builder, icon_client, icx_sender):
        icon_client.submit_transaction = AsyncMock(return_value=TX_HASH)

        with pytest.raises(SigningError):
            await builder.send_native(ChainType.ICX, "zz-not-hex", icx_sender, RECIPIENT_ICX, 10)

        icon_client.submit_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_key_must_control_sender(self, builder, eth_ready):
        with pytest.raises(SigningError):
            await builder.send_native(ChainType.ETH, SENDER_KEY, RECIPIENT_ETH, RECIPIENT_ETH, 10)
        eth_ready.get_transaction_count.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_icx_transfer(self, builder, icon_client, icx_sender, history):
        icon_client.submit_transaction = AsyncMock(return_value=TX_HASH)

        tx_hash = await builder.send_native(
            ChainType.ICX, SENDER_KEY, icx_sender, RECIPIENT_ICX, 5 * 10**18, memo="hi"
        )

        assert tx_hash == TX_HASH
        (signed,) = icon_client.submit_transaction.await_args.args
        assert signed["version"] == "0x3"
        assert signed["nid"] == "0x3"
        assert signed["from"] == icx_sender
        assert signed["to"] == RECIPIENT_ICX
        assert signed["value"] == hex(5 * 10**18)
        assert signed["stepLimit"] == hex(100_000)
        assert signed["dataType"] == "message"
        assert signed["data"] == "0x" + b"hi".hex()
        assert _icx_address_from_signature(signed) == icx_sender

        (record,) = history.list_for(icx_sender)
        assert record.tx_hash == TX_HASH
        assert record.value == hex(5 * 10**18)

    @pytest.mark.asyncio
    async def test_eth_transfer(self, builder, eth_ready, eth_sender):
        tx_hash = await builder.send_native(ChainType.ETH, SENDER_KEY, eth_sender, RECIPIENT_ETH, 10**17)

        assert tx_hash == TX_HASH
        (raw,) = eth_ready.submit_transaction.await_args.args
        assert Account.recover_transaction(raw).lower() == eth_sender
        eth_ready.get_transaction_count.assert_awaited_once_with(eth_sender)

    @pytest.mark.asyncio
    async def test_submission_error_keeps_reason(self, builder, icon_client, icx_sender, history):
        icon_client.submit_transaction = AsyncMock(side_effect=SubmissionError("Out of balance"))

        with pytest.raises(SubmissionError) as exc_info:
            await builder.send_native(ChainType.ICX, SENDER_KEY, icx_sender, RECIPIENT_ICX, 1)

        assert exc_info.value.reason == "Out of balance"
        assert history.list_for(icx_sender) == []

    @pytest.mark.asyncio
    async def test_known_low_balance(self, builder, cache, icon_client, icx_sender):
        icon_client.submit_transaction = AsyncMock(return_value=TX_HASH)
        cache.set_native(icx_sender, 5)

        with pytest.raises(InsufficientBalance):
            await builder.send_native(ChainType.ICX, SENDER_KEY, icx_sender, RECIPIENT_ICX, 6)
        icon_client.submit_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_positive_amount(self, builder, icon_client, icx_sender):
        icon_client.submit_transaction = AsyncMock(return_value=TX_HASH)

        with pytest.raises(TransferError):
            await builder.send_native(ChainType.ICX, SENDER_KEY, icx_sender, RECIPIENT_ICX, 0)
        with pytest.raises(TransferError):
            await builder.send_native(ChainType.ICX, SENDER_KEY, icx_sender, RECIPIENT_ICX, -5)
        icon_client.submit_transaction.assert_not_awaited()

    def test_amount_errors_share_one_family(self):
        assert issubclass(InsufficientBalance, TransferError)
        assert issubclass(TransferError, ValueError)

    @pytest.mark.asyncio
    async def test_history_failure_still_returns_hash(self, builder, icon_client, icx_sender, history):
        icon_client.submit_transaction = AsyncMock(return_value=TX_HASH)
        history.store.put_transaction = MagicMock(side_effect=StoreError("disk I/O error"))

        tx_hash = await builder.send_native(ChainType.ICX, SENDER_KEY, icx_sender, RECIPIENT_ICX, 1)

        assert tx_hash == TX_HASH
        icon_client.submit_transaction.assert_awaited_once()
        history.store.put_transaction.assert_called_once()


# ---------------------------------------------------------------------------
# Token transfers
# ---------------------------------------------------------------------------


class TestSendToken:
    @pytest.mark.asyncio
    async def test_icx_token_call(self, builder, icon_client, icx_sender, history):
        icon_client.submit_transaction = AsyncMock(return_value=TX_HASH)

        await builder.send_token(
            ChainType.ICX, SENDER_KEY, icx_sender, ICX_TOKEN, RECIPIENT_ICX, 255, token_symbol="TKN"
        )

        (signed,) = icon_client.submit_transaction.await_args.args
        assert signed["to"] == ICX_TOKEN
        assert "value" not in signed
        assert signed["dataType"] == "call"
        assert signed["data"] == {
            "method": "transfer",
            "params": {"_to": RECIPIENT_ICX, "_value": "0xff"},
        }
        assert signed["stepLimit"] == hex(150_000)
        assert history.list_for(icx_sender)[0].token_symbol == "TKN"

    @pytest.mark.asyncio
    async def test_eth_token_call(self, builder, eth_ready, eth_sender):
        await builder.send_token(ChainType.ETH, SENDER_KEY, eth_sender, ETH_TOKEN, RECIPIENT_ETH, 1000)

        (raw,) = eth_ready.submit_transaction.await_args.args
        assert Account.recover_transaction(raw).lower() == eth_sender
        calldata = ERC20_TRANSFER_SELECTOR.hex() + "00" * 12 + "ee" * 20 + format(1000, "064x")
        assert calldata in bytes(raw).hex()

    @pytest.mark.asyncio
    async def test_known_low_token_balance(self, builder, cache, eth_ready, eth_sender):
        cache.set_tokens(eth_sender, {ETH_TOKEN: 10})
        with pytest.raises(InsufficientBalance):
            await builder.send_token(ChainType.ETH, SENDER_KEY, eth_sender, ETH_TOKEN, RECIPIENT_ETH, 11)
        eth_ready.submit_transaction.assert_not_awaited()


# ---------------------------------------------------------------------------
# Token queries
# ---------------------------------------------------------------------------


class TestTokenQueries:
    @pytest.mark.asyncio
    async def test_icx_metadata(self, builder, icon_client, icx_sender):
        icon_client.call = AsyncMock(side_effect=["My Token", "0x12", "MTK"])

        meta = await builder.query_token_metadata(icx_sender, ICX_TOKEN)

        assert (meta.name, meta.symbol, meta.decimals) == ("My Token", "MTK", 18)
        methods = [c.args[2] for c in icon_client.call.await_args_list]
        assert methods == ["name", "decimals", "symbol"]

    @pytest.mark.asyncio
    async def test_eth_metadata(self, builder, eth_client, eth_sender):
        eth_client.call = AsyncMock(side_effect=["Tether", 6, "USDT"])
        meta = await builder.query_token_metadata(eth_sender, ETH_TOKEN)
        assert meta.decimals == 6

    @pytest.mark.asyncio
    async def test_metadata_all_or_nothing(self, builder, icon_client, icx_sender):
        icon_client.call = AsyncMock(side_effect=["My Token", NetworkError("boom"), "MTK"])

        with pytest.raises(NetworkError):
            await builder.query_token_metadata(icx_sender, ICX_TOKEN)
        assert icon_client.call.await_count == 2

    @pytest.mark.asyncio
    async def test_token_balance(self, builder, icon_client, icx_sender):
        icon_client.get_token_balance = AsyncMock(return_value=12)
        assert await builder.query_token_balance(icx_sender, ICX_TOKEN) == 12

    @pytest.mark.asyncio
    async def test_token_balance_failure_is_none(self, builder, eth_client, eth_sender):
        eth_client.get_token_balance = AsyncMock(side_effect=NetworkError("down"))
        assert await builder.query_token_balance(eth_sender, ETH_TOKEN) is None
