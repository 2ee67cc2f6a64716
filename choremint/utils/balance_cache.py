"""
Read-through balance cache for display reads.

Values come only from ``LedgerService.sum_for`` and may be stale for up to
the configured TTL. Nothing here is ever persisted or consulted by the goal
detector, rollover or evolution logic; those always read the ledger sum.
"""

import threading
import time
from typing import Callable, Dict, Tuple


class BalanceCache:
    """TTL-bounded map of child_id -> projected balance."""

    def __init__(self, ttl_seconds: int = 5, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._items: Dict[int, Tuple[int, float]] = {}

    def get(self, child_id: int, loader: Callable[[int], int]) -> int:
        """Return the cached balance, loading it through ``loader`` when missing or expired."""
        now = self._clock()
        with self._lock:
            item = self._items.get(child_id)
            if item is not None and now < item[1]:
                return item[0]

        value = loader(child_id)
        if self.ttl_seconds > 0:
            with self._lock:
                self._items[child_id] = (value, now + self.ttl_seconds)
        return value

    def invalidate(self, child_id: int) -> None:
        with self._lock:
            self._items.pop(child_id, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


def get_balance_cache() -> BalanceCache:
    """Get the cache bound to the current app, creating it on first use."""
    from flask import current_app

    cache = current_app.extensions.get('balance_cache')
    if cache is None:
        cache = BalanceCache(current_app.config.get('BALANCE_CACHE_TTL_SECONDS', 5))
        current_app.extensions['balance_cache'] = cache
    return cache
