#!/usr/bin/env python3
"""
IXWALLET - Chain Clients

JSON-RPC facades for ICON and Ethereum over aiohttp.
Every call is bounded by a timeout; transport failures surface as
NetworkError, chain rejections of a signed transaction as SubmissionError.
"""

import asyncio
import itertools
from typing import Any

import aiohttp
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode

from ixwallet.config import ChainType, WalletConfig
from ixwallet.logger import WalletLogger
from ixwallet.exceptions import NetworkError, SubmissionError

GOVERNANCE_ADDRESS = "cx0000000000000000000000000000000000000001"
ZERO_ADDRESS = "hx0000000000000000000000000000000000000000"

# keccak("balanceOf(address)")[:4]
BALANCE_OF_SELECTOR = bytes.fromhex("70a08231")
ERC20_SELECTORS = {
    "name": bytes.fromhex("06fdde03"),
    "symbol": bytes.fromhex("95d89b41"),
    "decimals": bytes.fromhex("313ce567"),
}


def parse_hex_int(value: Any) -> int:
    """0x-prefixed hex -> int. Raises NetworkError on anything else."""
    if not isinstance(value, str):
        raise NetworkError(f"Expected hex string, got {type(value).__name__}")
    text = value[2:] if value.lower().startswith("0x") else value
    try:
        return int(text or "0", 16)
    except ValueError as e:
        raise NetworkError(f"Malformed hex value: {value!r}", e) from e


class JsonRpcClient:
    """Shared session, id counter and timeout handling."""

    chain: ChainType

    def __init__(self, url: str, config: WalletConfig, logger: WalletLogger):
        self.url = url
        self.config = config
        self.logger = logger
        self.session: aiohttp.ClientSession | None = None
        self._ids = itertools.count(1)

    async def initialize(self):
        """Start the HTTP session."""
        if not self.session:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.rpc_timeout_seconds)
            )

    async def close(self):
        """Graceful shutdown."""
        if self.session:
            await self.session.close()
            self.session = None

    def _request(self, method: str, params: Any = None) -> dict:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            payload["params"] = params
        return payload

    async def _post(self, payload: dict | list) -> Any:
        if not self.session:
            await self.initialize()

        label = payload["method"] if isinstance(payload, dict) else "batch"
        try:
            async def _send():
                async with self.session.post(self.url, json=payload) as response:
                    return await response.json(content_type=None)

            return await asyncio.wait_for(_send(), timeout=self.config.rpc_timeout_seconds)
        except asyncio.TimeoutError as e:
            self.logger.warning(f"RPC timeout: {label}")
            raise NetworkError(f"RPC timeout: {label}", e) from e
        except (aiohttp.ClientError, ValueError) as e:
            raise NetworkError(f"RPC transport failure: {label}: {e}", e) from e

    async def rpc(self, method: str, params: Any = None) -> Any:
        """Single call; returns `result` or raises NetworkError with the RPC error."""
        body = await self._post(self._request(method, params))
        if not isinstance(body, dict):
            raise NetworkError(f"{method}: response is not a JSON object")
        if body.get("error"):
            raise NetworkError(f"{method}: {self._error_message(body['error'])}")
        if "result" not in body:
            raise NetworkError(f"{method}: response has no result")
        return body["result"]

    async def submit_transaction(self, signed: Any) -> str:
        """Broadcast a signed payload. The moment code becomes action on-chain."""
        method, params = self._submission(signed)
        body = await self._post(self._request(method, params))
        if not isinstance(body, dict):
            raise NetworkError(f"{method}: response is not a JSON object")
        if body.get("error"):
            raise SubmissionError(self._error_message(body["error"]))
        result = body.get("result")
        if not isinstance(result, str):
            raise SubmissionError(f"unexpected submission result: {result!r}")
        return result

    @staticmethod
    def _error_message(error: Any) -> str:
        if isinstance(error, dict):
            return str(error.get("message") or error)
        return str(error)

    def _submission(self, signed: Any) -> tuple[str, Any]:
        raise NotImplementedError


class IconClient(JsonRpcClient):
    """
    ICON JSON-RPC v3.
    Balances and token calls return 0x-hex strings.
    """

    chain = ChainType.ICX

    def __init__(self, config: WalletConfig, logger: WalletLogger):
        super().__init__(config.icx_rpc_url.rstrip("/") + "/api/v3", config, logger)
        self.nid = config.icx_nid

    async def get_native_balance(self, address: str) -> int:
        result = await self.rpc("icx_getBalance", {"address": address})
        return parse_hex_int(result)

    async def call(
        self, from_address: str, to: str, method: str, params: dict | None = None
    ) -> Any:
        """Read-only score call."""
        data: dict = {"method": method}
        if params:
            data["params"] = params
        return await self.rpc(
            "icx_call",
            {"from": from_address, "to": to, "dataType": "call", "data": data},
        )

    async def get_token_balance(self, owner: str, contract: str) -> int:
        result = await self.call(owner, contract, "balanceOf", {"_owner": owner})
        return parse_hex_int(result)

    def _submission(self, signed: dict) -> tuple[str, Any]:
        return "icx_sendTransaction", signed

    # ── Governance ────────────────────────────────────────

    async def get_step_costs(self) -> dict:
        result = await self.call(ZERO_ADDRESS, GOVERNANCE_ADDRESS, "getStepCosts")
        if not isinstance(result, dict):
            raise NetworkError("getStepCosts: result is not an object")
        return {key: parse_hex_int(value) for key, value in result.items()}

    async def get_max_step_limit(self) -> int:
        result = await self.call(
            ZERO_ADDRESS, GOVERNANCE_ADDRESS, "getMaxStepLimit", {"contextType": "invoke"}
        )
        return parse_hex_int(result)

    async def get_min_step_limit(self) -> int:
        return parse_hex_int(await self.call(ZERO_ADDRESS, GOVERNANCE_ADDRESS, "getMinStepLimit"))

    async def get_step_price(self) -> int:
        return parse_hex_int(await self.call(ZERO_ADDRESS, GOVERNANCE_ADDRESS, "getStepPrice"))


class EthereumClient(JsonRpcClient):
    """Ethereum JSON-RPC. Token queries are ABI-encoded eth_calls."""

    chain = ChainType.ETH

    def __init__(self, config: WalletConfig, logger: WalletLogger):
        super().__init__(config.eth_rpc_url, config, logger)
        self.chain_id = config.eth_chain_id

    async def get_native_balance(self, address: str) -> int:
        return parse_hex_int(await self.rpc("eth_getBalance", [address, "latest"]))

    async def call(
        self, from_address: str, to: str, method: str, params: dict | None = None
    ) -> Any:
        """
        Read-only ERC-20 call. Supports name/symbol/decimals and balanceOf;
        returns the decoded value.
        """
        if method == "balanceOf":
            owner = (params or {}).get("_owner", from_address)
            data = BALANCE_OF_SELECTOR + abi_encode(["address"], [owner])
        elif method in ERC20_SELECTORS:
            data = ERC20_SELECTORS[method]
        else:
            raise NetworkError(f"Unsupported ERC-20 call: {method}")

        raw = await self.rpc(
            "eth_call", [{"from": from_address, "to": to, "data": "0x" + data.hex()}, "latest"]
        )
        return self._decode_call(method, raw)

    @staticmethod
    def _decode_call(method: str, raw: Any) -> Any:
        if not isinstance(raw, str):
            raise NetworkError(f"{method}: eth_call result is not a hex string")
        if method in ("balanceOf", "decimals"):
            return parse_hex_int(raw)
        try:
            (value,) = abi_decode(["string"], bytes.fromhex(raw[2:]))
        except Exception as e:
            raise NetworkError(f"{method}: undecodable string result", e) from e
        return value

    async def get_token_balance(self, owner: str, contract: str) -> int:
        return await self.call(owner, contract, "balanceOf", {"_owner": owner})

    async def get_transaction_count(self, address: str) -> int:
        return parse_hex_int(await self.rpc("eth_getTransactionCount", [address, "pending"]))

    async def get_gas_price(self) -> int:
        return parse_hex_int(await self.rpc("eth_gasPrice"))

    async def get_balances_batch(
        self, address: str, contracts: list[str]
    ) -> tuple[int | None, dict[str, int]]:
        """
        Native balance plus every token balance in ONE batch round trip.
        Entries that fail individually come back absent, not zero.
        """
        requests = [self._request("eth_getBalance", [address, "latest"])]
        owner_data = "0x" + (BALANCE_OF_SELECTOR + abi_encode(["address"], [address])).hex()
        for contract in contracts:
            requests.append(
                self._request("eth_call", [{"to": contract, "data": owner_data}, "latest"])
            )

        body = await self._post(requests)
        if not isinstance(body, list):
            raise NetworkError("batch: response is not a JSON array")

        by_id = {item.get("id"): item for item in body if isinstance(item, dict)}

        def _value(request: dict) -> int | None:
            item = by_id.get(request["id"])
            if not item or item.get("error") or "result" not in item:
                return None
            try:
                return parse_hex_int(item["result"])
            except NetworkError:
                return None

        native = _value(requests[0])
        tokens = {}
        for contract, request in zip(contracts, requests[1:]):
            value = _value(request)
            if value is not None:
                tokens[contract.lower()] = value
        return native, tokens

    def _submission(self, signed: bytes) -> tuple[str, Any]:
        return "eth_sendRawTransaction", ["0x" + bytes(signed).hex()]
