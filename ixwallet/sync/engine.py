#!/usr/bin/env python3
"""
IXWALLET - Balance Sync Engine

Walks every known wallet, fetches native and token balances from the
right chain, writes them into the BalanceCache and publishes one
BalanceEvent per refreshed address.

    ICX: native balance, then one balanceOf call per token, in order
    ETH: native + all tokens in a single batch request, one ETH job at a time

Failures are logged and leave the old value in place; the next cycle
retries. Nothing here raises to the caller of refresh_all().
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from ixwallet.config import ChainType, WalletConfig
from ixwallet.core.client import EthereumClient, IconClient
from ixwallet.core.models import WalletRecord
from ixwallet.data.price_feed import ExchangeRateFeed
from ixwallet.exceptions import InvalidChainType, NetworkError
from ixwallet.logger import WalletLogger
from ixwallet.sync.cache import BalanceCache


@dataclass
class BalanceEvent:
    """Published after one address finishes refreshing."""
    address: str
    chain: ChainType
    native: int | None
    tokens: dict[str, int] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


class BalanceSyncEngine:
    """
    Single writer of the BalanceCache.

    At most one full refresh cycle is outstanding at a time: a new cycle
    starts only when the in-flight set is empty.
    """

    def __init__(
        self,
        config: WalletConfig,
        cache: BalanceCache,
        icon_client: IconClient,
        eth_client: EthereumClient,
        rates: ExchangeRateFeed,
        logger: WalletLogger,
        wallet_source: Callable[[], Iterable[WalletRecord]],
    ):
        self.config = config
        self.cache = cache
        self.icon_client = icon_client
        self.eth_client = eth_client
        self.rates = rates
        self.logger = logger
        self.wallet_source = wallet_source

        # ETH balance jobs run one at a time; ICX jobs are not gated
        self._eth_gate = asyncio.Semaphore(1)

        self._events: asyncio.Queue[BalanceEvent] = asyncio.Queue()
        self.subscribers: list[Callable] = []
        self._dispatcher: asyncio.Task | None = None
        self._loop_task: asyncio.Task | None = None
        self.running = False

    # ── Subscribers ───────────────────────────────────────

    def subscribe(self, callback: Callable):
        """`callback(event)` may be a plain function or a coroutine function."""
        self.subscribers.append(callback)

    def unsubscribe(self, callback: Callable):
        if callback in self.subscribers:
            self.subscribers.remove(callback)

    def _ensure_dispatcher(self):
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_events())

    async def _dispatch_events(self):
        """The one consumer of the event queue; delivers in publish order."""
        while True:
            event = await self._events.get()
            try:
                for callback in list(self.subscribers):
                    try:
                        result = callback(event)
                        if asyncio.iscoroutine(result):
                            await result
                    except Exception as e:
                        self.logger.error("Balance subscriber error", e)
            finally:
                self._events.task_done()

    async def flush_events(self):
        """Wait until every published event has reached the subscribers."""
        self._ensure_dispatcher()
        await self._events.join()

    def _publish(self, event: BalanceEvent):
        event.timestamp = datetime.now()
        self._events.put_nowait(event)

    # ── Refresh ───────────────────────────────────────────

    async def refresh_all(self) -> bool:
        """
        Start and await one full refresh cycle.

        Returns False without touching the network if a cycle is already
        in flight.
        """
        if not self.cache.is_refresh_complete:
            self.logger.debug(
                f"Refresh skipped; {len(self.cache.in_flight())} addresses still in flight"
            )
            return False

        self._ensure_dispatcher()

        jobs = []
        for record in self.wallet_source():
            if self.cache.try_begin(record.address):
                jobs.append(self._run_job(record))

        if not jobs:
            return True

        results = await asyncio.gather(*jobs, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self.logger.error("Balance refresh job failed", result)
        return True

    async def refresh_wallet(self, record: WalletRecord) -> bool:
        """Refresh one wallet now (after import, for instance). False if already in flight."""
        if not self.cache.try_begin(record.address):
            return False
        self._ensure_dispatcher()
        await self._run_job(record)
        return True

    async def _run_job(self, record: WalletRecord):
        """
        One wallet's refresh. The job is cut off once its in-flight slot
        would expire, so a slot is never freed while its fetch still runs;
        only the slot this job began is released.
        """
        address = record.address
        started = self.cache.started_at(address)
        timeout = self.cache.in_flight_timeout if self.cache.in_flight_timeout > 0 else None
        event = BalanceEvent(address=address, chain=record.chain, native=None)
        try:
            await asyncio.wait_for(self._refresh(record, event), timeout)
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Refresh of {self.logger.short(address)} cut off after {timeout:g}s"
            )
        finally:
            self.cache.finish(address, started)

        self.logger.balance_refreshed(address, event.native, len(event.tokens))
        self._publish(event)

    async def _refresh(self, record: WalletRecord, event: BalanceEvent):
        if record.chain == ChainType.ICX:
            await self._refresh_icx(record, event)
        elif record.chain == ChainType.ETH:
            await self._refresh_eth(record, event)
        else:
            raise InvalidChainType(f"Unsupported chain: {record.chain!r}")

    async def _refresh_icx(self, record: WalletRecord, event: BalanceEvent):
        address = record.address
        try:
            event.native = await self.icon_client.get_native_balance(address)
            self.cache.set_native(address, event.native)
        except NetworkError as e:
            self.logger.warning(f"ICX balance failed for {self.logger.short(address)}: {e}")

        for token in record.tokens:
            try:
                balance = await self.icon_client.get_token_balance(address, token.contract_address)
            except NetworkError as e:
                self.logger.warning(
                    f"{token.symbol} balance failed for {self.logger.short(address)}: {e}"
                )
                continue
            event.tokens[token.contract_address] = balance
            self.cache.set_tokens(address, {token.contract_address: balance})

    async def _refresh_eth(self, record: WalletRecord, event: BalanceEvent):
        address = record.address
        contracts = [token.contract_address for token in record.tokens]
        async with self._eth_gate:
            try:
                native, tokens = await self.eth_client.get_balances_batch(address, contracts)
            except NetworkError as e:
                self.logger.warning(f"ETH balance failed for {self.logger.short(address)}: {e}")
                return

        if native is not None:
            event.native = native
            self.cache.set_native(address, native)
        if tokens:
            event.tokens.update(tokens)
            self.cache.set_tokens(address, tokens)

    # ── Periodic loop ─────────────────────────────────────

    async def start(self):
        """Refresh every `refresh_interval_seconds` until stop()."""
        if self.running:
            return
        self.running = True
        if not self.cache.active:
            self.cache.init()
        self._ensure_dispatcher()
        self._loop_task = asyncio.create_task(self._refresh_loop())

    async def _refresh_loop(self):
        while self.running:
            try:
                await self.refresh_all()
            except Exception as e:
                self.logger.error("Refresh cycle error", e)
            await asyncio.sleep(self.config.refresh_interval_seconds)

    async def stop(self):
        """Graceful shutdown. In-flight refreshes are abandoned."""
        self.running = False
        for task in (self._loop_task, self._dispatcher):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._dispatcher = None

    # ── Totals ────────────────────────────────────────────

    def get_total_balance(self, wallets: Iterable[WalletRecord] | None = None) -> Decimal:
        """
        Sum of every cached balance that has a rate, in the reference currency.

        Wallets without a cached native balance or a native rate are
        skipped entirely, tokens without a balance or a rate likewise.
        The result is a lower bound until every refresh has completed.
        """
        places = self.config.exchange_decimals
        total = Decimal(0).scaleb(-places)

        for record in wallets if wallets is not None else self.wallet_source():
            native = self.cache.get_native(record.address)
            if native is None:
                continue

            exchanged = self.rates.balance_to_exchange(native, record.chain.symbol, record.decimals)
            if exchanged is None:
                continue
            total += exchanged

            for token in record.tokens:
                balance = self.cache.get_token(record.address, token.contract_address)
                if balance is None:
                    continue
                exchanged = self.rates.balance_to_exchange(balance, token.symbol, token.decimal)
                if exchanged is not None:
                    total += exchanged

        return total
