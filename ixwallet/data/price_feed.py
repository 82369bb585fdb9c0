#!/usr/bin/env python3
"""
IXWALLET - Exchange Rate Feed

Reference-currency rates for native coins and tokens.

Rates come from two places:
1. The exchange price API (pairs such as "icxusd", "ethusd")
2. Manual registrations through set_rate()

Conversions are decimal-exact; nothing passes through float.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional

import aiohttp

from ixwallet.config import WalletConfig

logger = logging.getLogger(__name__)


@dataclass
class ExchangeRate:
    """One <symbol><currency> pair."""
    symbol: str
    currency: str
    price: Decimal
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def pair(self) -> str:
        return f"{self.symbol}{self.currency}"

    def age_seconds(self) -> float:
        return (datetime.now() - self.timestamp).total_seconds()


class ExchangeRateFeed:
    """
    Rate registry keyed by lower-case symbol, in the configured currency.
    Missing rates stay missing; callers decide what that means.
    """

    def __init__(self, config: WalletConfig):
        self.config = config
        self.currency = config.currency
        self.rates: Dict[str, ExchangeRate] = {}
        self.session: Optional[aiohttp.ClientSession] = None
        self.subscribers: List[Callable] = []

    async def initialize(self):
        """Initialize HTTP session."""
        if not self.session:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.rpc_timeout_seconds)
            )

    async def close(self):
        """Close HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    def set_rate(self, symbol: str, price) -> ExchangeRate:
        """Register a rate by hand. `price` is anything Decimal accepts."""
        rate = ExchangeRate(
            symbol=symbol.lower(),
            currency=self.currency,
            price=Decimal(str(price)),
        )
        self.rates[rate.symbol] = rate
        return rate

    def get_rate(self, symbol: str) -> Optional[Decimal]:
        rate = self.rates.get(symbol.lower())
        return rate.price if rate else None

    async def fetch_rates(self, symbols: List[str]) -> Dict[str, Decimal]:
        """
        Pull rates for `symbols` from the exchange API.

        Returns only the rates that came back; a failed fetch leaves the
        registry as it was.
        """
        if not symbols:
            return {}
        if not self.session:
            await self.initialize()

        pairs = {f"{s.lower()}{self.currency}": s.lower() for s in symbols}
        params = {"codeList": ",".join(pairs)}

        try:
            async with self.session.get(self.config.exchange_api_url, params=params) as response:
                if response.status != 200:
                    logger.warning("Exchange API returned HTTP %s", response.status)
                    return {}
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning("Exchange API request failed: %s", e)
            return {}

        updated = {}
        for item in self._parse_items(body):
            symbol = pairs.get(str(item.get("tradeName", "")).lower())
            if symbol is None:
                continue
            try:
                price = Decimal(str(item.get("price")))
            except InvalidOperation:
                logger.debug("Unparseable price for %s: %r", symbol, item.get("price"))
                continue
            if not price.is_finite() or price < 0:
                continue
            self.set_rate(symbol, price)
            updated[symbol] = price

        if updated:
            self._notify_subscribers(updated)
        return updated

    @staticmethod
    def _parse_items(body) -> List[dict]:
        if not isinstance(body, dict):
            return []
        data = body.get("data")
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    def balance_to_exchange(
        self,
        amount: int,
        symbol: str,
        decimals: int,
    ) -> Optional[Decimal]:
        """
        Convert a base-unit amount to the reference currency.

        Rounds down to 2 places for USD and 4 for anything else.
        Returns None if no rate is registered for `symbol`.
        """
        price = self.get_rate(symbol)
        if price is None:
            return None

        places = Decimal(1).scaleb(-self.config.exchange_decimals)
        value = Decimal(amount).scaleb(-decimals) * price
        return value.quantize(places, rounding=ROUND_DOWN)

    # ── Subscribers ───────────────────────────────────────

    def subscribe(self, callback: Callable):
        """Called with {symbol: price} after every successful fetch."""
        self.subscribers.append(callback)

    def _notify_subscribers(self, updated: Dict[str, Decimal]):
        for callback in self.subscribers:
            try:
                callback(updated)
            except Exception as e:
                logger.error("Rate subscriber error: %s", e)
