#!/usr/bin/env python3
"""
IXWALLET - Balance Cache

Process-wide balance state, owned by one object with an explicit
init()/shutdown() lifecycle and injected wherever it is needed.

    native:    normalized address -> base-unit balance
    tokens:    normalized address -> {contract address -> base-unit balance}
    in_flight: normalized address -> monotonic start time of its refresh

One writer (the sync engine), any number of readers. Readers may see
values change between two reads.

The sync engine cancels a refresh before its slot expires; expiry here
releases slots whose job was abandoned (process suspended mid-fetch).
"""

import logging
import threading
import time
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class BalanceCache:
    """
    Every method takes the lock for a single dict operation only; no
    caller ever holds it across a network call.
    """

    def __init__(self, in_flight_timeout_seconds: float = 60.0):
        self.in_flight_timeout = in_flight_timeout_seconds
        self._lock = threading.RLock()
        self._native: Dict[str, int] = {}
        self._tokens: Dict[str, Dict[str, int]] = {}
        self._in_flight: Dict[str, float] = {}
        self._active = False

    def init(self):
        with self._lock:
            self._native.clear()
            self._tokens.clear()
            self._in_flight.clear()
            self._active = True

    def shutdown(self):
        """Abandon whatever is in flight; values are never persisted."""
        with self._lock:
            abandoned = len(self._in_flight)
            self._in_flight.clear()
            self._active = False
        if abandoned:
            logger.debug("Balance cache shut down with %d refreshes in flight", abandoned)

    @property
    def active(self) -> bool:
        return self._active

    # ── Balances ──────────────────────────────────────────

    def get_native(self, address: str) -> Optional[int]:
        with self._lock:
            return self._native.get(address)

    def set_native(self, address: str, balance: int):
        with self._lock:
            self._native[address] = balance

    def get_tokens(self, address: str) -> Dict[str, int]:
        """Copy of the token map for `address` (empty if never fetched)."""
        with self._lock:
            return dict(self._tokens.get(address, {}))

    def get_token(self, address: str, contract: str) -> Optional[int]:
        with self._lock:
            return self._tokens.get(address, {}).get(contract.lower())

    def set_tokens(self, address: str, balances: Dict[str, int]):
        """
        Merge freshly fetched token balances over the previous map.
        Tokens that failed this round keep their stale value.
        """
        with self._lock:
            merged = dict(self._tokens.get(address, {}))
            merged.update({contract.lower(): value for contract, value in balances.items()})
            self._tokens[address] = merged

    def has_balances(self) -> bool:
        with self._lock:
            return bool(self._native)

    def evict(self, address: str):
        """Forget everything about `address` (wallet deleted)."""
        with self._lock:
            self._native.pop(address, None)
            self._tokens.pop(address, None)
            self._in_flight.pop(address, None)

    # ── In-flight set ─────────────────────────────────────

    def try_begin(self, address: str) -> bool:
        """Mark `address` in flight. False if a live refresh already holds it."""
        with self._lock:
            self._expire_locked()
            if address in self._in_flight:
                return False
            self._in_flight[address] = time.monotonic()
            return True

    def started_at(self, address: str) -> Optional[float]:
        """Monotonic start stamp of the live refresh for `address`, if any."""
        with self._lock:
            return self._in_flight.get(address)

    def finish(self, address: str, started: Optional[float] = None):
        """
        Release `address`. With `started`, only the entry carrying that
        stamp is released; a newer refresh of the same address keeps its slot.
        """
        with self._lock:
            if started is None or self._in_flight.get(address) == started:
                self._in_flight.pop(address, None)

    def is_in_flight(self, address: str) -> bool:
        with self._lock:
            self._expire_locked()
            return address in self._in_flight

    def in_flight(self) -> List[str]:
        with self._lock:
            self._expire_locked()
            return list(self._in_flight)

    @property
    def is_refresh_complete(self) -> bool:
        with self._lock:
            self._expire_locked()
            return not self._in_flight

    def _expire_locked(self):
        if self.in_flight_timeout <= 0:
            return
        cutoff = time.monotonic() - self.in_flight_timeout
        expired = [a for a, started in self._in_flight.items() if started < cutoff]
        for address in expired:
            del self._in_flight[address]
            logger.warning(
                "Refresh for %s exceeded %.0fs; releasing in-flight slot",
                address, self.in_flight_timeout,
            )
