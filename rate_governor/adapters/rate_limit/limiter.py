"""Fixed-window rate limiter over a shared counter store."""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from rate_governor.adapters.rate_limit.base import AbstractCounterStore, Decision, Rate
from rate_governor.core.errors import StoreUnavailableError
from rate_governor.core.logging import rate_limit_key_fields

logger = logging.getLogger(__name__)


class RateLimiter:
    """Turn counter store reads into admission decisions for one rate.

    The limiter holds no mutable state of its own; several limiters can share
    one store as long as their keys do not collide.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        rate: Rate,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._rate = rate
        self._clock = clock

    @property
    def rate(self) -> Rate:
        return self._rate

    def check(self, key: str) -> Decision | None:
        """Count one request for ``key`` and decide whether it is admitted.

        Fails open: when the store raises StoreUnavailableError the failure is
        logged and None is returned, which callers must treat as "admit"
        without rate limit metadata. Rejecting all traffic because counting
        is down is worse than briefly under-counting.

        Args:
            key: Fully composed rate limit key (identity plus class suffix).

        Returns:
            Decision for this request, or None when the store is unavailable.
        """
        try:
            counter = self._store.increment_and_get(key, self._rate)
        except StoreUnavailableError as exc:
            logger.warning(
                "rate_limit.store_unavailable",
                extra={
                    **rate_limit_key_fields(key),
                    "error_code": exc.code,
                    "error_message": exc.message,
                    "policy": "fail_open",
                },
            )
            return None

        limit = self._rate.limit
        reset_after = max(0, math.ceil(counter.expires_at - self._clock()))
        return Decision(
            limit=limit,
            remaining=max(0, limit - counter.count),
            reached=counter.count > limit,
            reset_after_seconds=reset_after,
            expires_at=counter.expires_at,
        )
