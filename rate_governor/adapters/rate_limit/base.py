"""Rate limiting interfaces and value types.

The limiter depends on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta

_FORMATTED_RATE = re.compile(r"^\s*(\d+)\s*-\s*([smhd])\s*$", re.IGNORECASE)

_PERIOD_UNITS: dict[str, tuple[timedelta, str]] = {
    "s": (timedelta(seconds=1), "second"),
    "m": (timedelta(minutes=1), "minute"),
    "h": (timedelta(hours=1), "hour"),
    "d": (timedelta(days=1), "day"),
}


@dataclass(frozen=True)
class Rate:
    """Immutable rate configuration: ``limit`` events per ``period``.

    Attributes:
        limit: Maximum number of events allowed per window.
        period: Window length.
    """

    limit: int
    period: timedelta

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.period <= timedelta(0):
            raise ValueError("period must be positive")

    @classmethod
    def from_formatted(cls, value: str) -> "Rate":
        """Parse a compact ``<limit>-<unit>`` rate such as ``"100-M"``.

        Units: S (second), M (minute), H (hour), D (day), case-insensitive.

        Raises:
            ValueError: If the string does not match the format.
        """
        match = _FORMATTED_RATE.match(value or "")
        if match is None:
            raise ValueError(f"invalid rate format: {value!r} (expected e.g. '100-M')")
        limit, unit = match.groups()
        period, _ = _PERIOD_UNITS[unit.lower()]
        return cls(limit=int(limit), period=period)

    @property
    def period_seconds(self) -> float:
        return self.period.total_seconds()

    @property
    def period_label(self) -> str:
        """Human-readable period, e.g. ``"minute"`` or ``"30 seconds"``."""
        for unit_period, name in _PERIOD_UNITS.values():
            if self.period == unit_period:
                return name
        seconds = self.period_seconds
        if seconds.is_integer():
            return f"{int(seconds)} seconds"
        return f"{seconds:g} seconds"


@dataclass(frozen=True)
class WindowCounter:
    """Snapshot of one key's fixed window, read atomically with its update.

    Attributes:
        count: Events observed in the current window (post-increment).
        expires_at: UNIX epoch seconds at which the window resets.
    """

    count: int
    expires_at: float


@dataclass(frozen=True)
class Decision:
    """Admission decision for one request.

    Attributes:
        limit: Max events per window, copied from the rate.
        remaining: Events left in the current window, floored at 0.
        reached: Whether this request exceeded the limit.
        reset_after_seconds: Whole seconds until the window resets.
        expires_at: UNIX epoch seconds at which the window resets, as
            reported by the store.
    """

    limit: int
    remaining: int
    reached: bool
    reset_after_seconds: int
    expires_at: float


class AbstractCounterStore(ABC):
    """Interface for fixed-window counter stores.

    Implementations must serialize every read-modify-write for a given key.
    Backends that can fail (network stores) raise StoreUnavailableError;
    they must never report a silent zero count.
    """

    @abstractmethod
    def increment_and_get(self, key: str, rate: Rate) -> WindowCounter:
        """Count one event for ``key`` and return the resulting window.

        Args:
            key: Opaque, non-empty rate limit key.
            rate: Rate whose period sizes new or rolled-over windows.

        Returns:
            WindowCounter with the post-increment count and window expiry.
        """
        raise NotImplementedError
