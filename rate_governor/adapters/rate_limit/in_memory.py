"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a single lock serializes every increment-and-read.
- Windows are anchored at a key's first observation, not at clock
  boundaries. A burst straddling a reset can therefore admit up to
  2 x limit events; this is the accepted fixed-window approximation.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from rate_governor.adapters.rate_limit.base import AbstractCounterStore, Rate, WindowCounter

logger = logging.getLogger(__name__)


@dataclass
class _CounterEntry:
    count: int
    expires_at: float


class InMemoryWindowCounterStore(AbstractCounterStore):
    """Counter store keeping one fixed window per key in a dict.

    Expired entries are replaced lazily when their key is seen again. To bound
    memory across many distinct keys, the store also sweeps all expired
    entries at most once per ``sweep_interval_seconds``, piggybacking on
    regular traffic instead of running a background thread.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float | None = 300.0,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_interval_seconds: Minimum delay between opportunistic sweeps
                of expired entries; None disables sweeping.

        Raises:
            ValueError: If sweep_interval_seconds is not positive.
        """
        if sweep_interval_seconds is not None and sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")

        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._lock = threading.Lock()
        self._entries: dict[str, _CounterEntry] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def increment_and_get(self, key: str, rate: Rate) -> WindowCounter:
        """Count one event for ``key`` within its fixed window.

        A missing entry, or one whose window expired at or before now, is
        replaced by a fresh window with count 1 expiring one period from now.
        Otherwise the count is incremented and the expiry is left unchanged.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)

            entry = self._entries.get(key)
            if entry is None or entry.expires_at <= now:
                entry = _CounterEntry(count=1, expires_at=now + rate.period_seconds)
                self._entries[key] = entry
            else:
                entry.count += 1

            return WindowCounter(count=entry.count, expires_at=entry.expires_at)

    def peek(self, key: str) -> WindowCounter | None:
        """Return the stored window for ``key`` without counting an event."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return WindowCounter(count=entry.count, expires_at=entry.expires_at)

    def sweep_expired(self) -> int:
        """Drop every entry whose window has expired.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            return self._sweep(self._clock())

    def _maybe_sweep(self, now: float) -> None:
        if self._sweep_interval is None or now - self._last_sweep < self._sweep_interval:
            return
        removed = self._sweep(now)
        if removed:
            logger.debug(
                "rate_limit.store_swept",
                extra={"removed": removed, "remaining_entries": len(self._entries)},
            )

    def _sweep(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        return len(expired)
