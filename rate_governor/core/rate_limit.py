"""Rate limiting service and FastAPI dependencies.

This module wires the rate limiting adapters into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: the counter store can be replaced (e.g., Redis) behind an
  abstract interface.
- One limiter per endpoint class, all sharing one store; each class appends
  its own key suffix so counters never collide.

Endpoint classes (defaults, overridable via RATE_LIMIT_* settings):

    general   100 per minute   no suffix
    export     10 per hour     :export
    sync       60 per minute   :sync
    restore     1 per hour     :restore, device identity required

Store failures fail open: the request proceeds without X-RateLimit-* headers.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response

from rate_governor.adapters.rate_limit.base import AbstractCounterStore, Decision, Rate
from rate_governor.adapters.rate_limit.in_memory import InMemoryWindowCounterStore
from rate_governor.adapters.rate_limit.limiter import RateLimiter
from rate_governor.core.config import RateLimitSettings, settings
from rate_governor.core.errors import MissingRequiredIdentityError, RateLimitExceededError
from rate_governor.core.identity import (
    DEVICE_ID_HEADER,
    DEVICE_ID_QUERY_PARAM,
    DEVICE_NAMESPACE,
    IdentitySignals,
    build_rate_limit_key,
    resolve_device_id,
    resolve_identity,
    signals_from_request,
)
from rate_governor.core.logging import rate_limit_key_fields

logger = logging.getLogger(__name__)

GENERAL = "general"
EXPORT = "export"
SYNC = "sync"
RESTORE = "restore"


@dataclass(frozen=True)
class EndpointClass:
    """Rate configuration for a group of endpoints.

    Attributes:
        name: Endpoint class identifier.
        rate: Limit and period shared by every endpoint in the class.
        key_suffix: Appended to the identity key to isolate counters.
        requires_device: Reject requests without a device id before counting,
            and always key by device.
        title: Prefix for the rejection message.
        unit: Singular noun for what is being counted.
    """

    name: str
    rate: Rate
    key_suffix: str | None = None
    requires_device: bool = False
    title: str = "Rate limit"
    unit: str = "request"

    def exceeded_message(self) -> str:
        limit = self.rate.limit
        unit = self.unit if limit == 1 else f"{self.unit}s"
        message = f"{self.title} exceeded. Maximum {limit} {unit} per {self.rate.period_label}"
        if self.requires_device:
            message += " per device"
        return message + "."


@dataclass(frozen=True)
class RateLimitOutcome:
    """Result of checking one request against an endpoint class.

    ``decision`` is None when the counter store was unavailable (fail-open).
    """

    endpoint_class: EndpointClass
    key: str
    decision: Decision | None
    reset_at: float | None = None
    device_id: str | None = None


def build_endpoint_classes(rate_settings: RateLimitSettings) -> tuple[EndpointClass, ...]:
    """Build the four endpoint classes from configured rates.

    Raises:
        ValueError: If any configured rate string is malformed.
    """
    return (
        EndpointClass(name=GENERAL, rate=Rate.from_formatted(rate_settings.general)),
        EndpointClass(
            name=EXPORT,
            rate=Rate.from_formatted(rate_settings.export),
            key_suffix="export",
            title="Export rate limit",
            unit="export",
        ),
        EndpointClass(
            name=SYNC,
            rate=Rate.from_formatted(rate_settings.sync),
            key_suffix="sync",
            title="Sync rate limit",
            unit="sync request",
        ),
        EndpointClass(
            name=RESTORE,
            rate=Rate.from_formatted(rate_settings.restore),
            key_suffix="restore",
            requires_device=True,
            title="Device restore rate limit",
            unit="restore",
        ),
    )


class RateLimitService:
    """One RateLimiter per endpoint class over a shared counter store."""

    def __init__(
        self,
        endpoint_classes: Iterable[EndpointClass],
        *,
        store: AbstractCounterStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._classes: dict[str, EndpointClass] = {}
        self._limiters: dict[str, RateLimiter] = {}
        for endpoint_class in endpoint_classes:
            self._classes[endpoint_class.name] = endpoint_class
            self._limiters[endpoint_class.name] = RateLimiter(
                store, endpoint_class.rate, clock=clock
            )

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def endpoint_class(self, name: str) -> EndpointClass:
        return self._classes[name]

    def require_identity(self, class_name: str, signals: IdentitySignals) -> str | None:
        """Enforce the identity precondition of ``class_name``.

        Runs whether or not limiting is enabled.

        Returns:
            The device id for classes that require one, otherwise None.

        Raises:
            KeyError: If class_name is not configured.
            MissingRequiredIdentityError: If the class requires a device id
                and none was supplied.
        """
        endpoint_class = self._classes[class_name]
        if not endpoint_class.requires_device:
            return None

        device_id = resolve_device_id(signals)
        if not device_id:
            raise MissingRequiredIdentityError(
                code="device_id_required",
                message=(
                    f"Device ID is required for {endpoint_class.name} operations. "
                    f"Provide via query param '{DEVICE_ID_QUERY_PARAM}' "
                    f"or header '{DEVICE_ID_HEADER}'"
                ),
                details={"endpoint_class": endpoint_class.name},
            )
        return device_id

    def check(self, class_name: str, signals: IdentitySignals) -> RateLimitOutcome:
        """Count one request from ``signals`` against ``class_name``.

        Args:
            class_name: Endpoint class name (e.g. "export").
            signals: Identity signals of the caller.

        Returns:
            RateLimitOutcome with the decision (None when failing open).

        Raises:
            KeyError: If class_name is not configured.
            MissingRequiredIdentityError: If the class requires a device id
                and none was supplied. No counter is touched in that case.
        """
        endpoint_class = self._classes[class_name]
        device_id = self.require_identity(class_name, signals)
        if device_id:
            identity = f"{DEVICE_NAMESPACE}:{device_id}"
        else:
            identity = resolve_identity(signals)

        key = build_rate_limit_key(identity, endpoint_class.key_suffix)
        decision = self._limiters[class_name].check(key)

        return RateLimitOutcome(
            endpoint_class=endpoint_class,
            key=key,
            decision=decision,
            reset_at=decision.expires_at if decision is not None else None,
            device_id=device_id,
        )


_service: RateLimitService | None = None
_service_config: tuple | None = None


def _config_fingerprint(cfg: RateLimitSettings) -> tuple:
    return (cfg.general, cfg.export, cfg.sync, cfg.restore, cfg.sweep_interval_seconds)


def get_rate_limit_service() -> RateLimitService:
    """Return the process-wide rate limit service.

    The instance is cached in-module to preserve counters across requests.
    If configuration changes (primarily in tests), the service is rebuilt
    with a fresh store.
    """

    global _service, _service_config

    cfg = settings.rate_limit
    config = _config_fingerprint(cfg)

    if _service is None or _service_config != config:
        _service = RateLimitService(
            build_endpoint_classes(cfg),
            store=InMemoryWindowCounterStore(sweep_interval_seconds=cfg.sweep_interval_seconds),
        )
        _service_config = config

    return _service


def set_rate_limit_service(service: RateLimitService | None) -> None:
    """Install a specific service instance (or None to rebuild from settings)."""

    global _service, _service_config

    _service = service
    if service is None:
        _service_config = None
    else:
        _service_config = _config_fingerprint(settings.rate_limit)


def build_rate_limit_headers(decision: Decision) -> dict[str, str]:
    """Render X-RateLimit-* (and Retry-After when reached) for a decision."""

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_after_seconds),
    }
    if decision.reached:
        headers["Retry-After"] = str(decision.reset_after_seconds)
    return headers


def _format_reset_at(reset_at: float) -> str:
    return datetime.fromtimestamp(int(reset_at), tz=timezone.utc).isoformat()


def rate_limit_dependency(class_name: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the given endpoint class.

    The dependency consumes one unit from the caller's budget, copies the
    X-RateLimit-* headers onto the response and raises RateLimitExceededError
    (rendered as HTTP 429) once the budget is spent. With RATE_LIMIT_ENABLED
    off nothing is counted, but identity preconditions still apply.
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        service = get_rate_limit_service()
        signals = signals_from_request(request)

        try:
            if not settings.rate_limit.enabled:
                service.require_identity(class_name, signals)
                return
            outcome = service.check(class_name, signals)
        except MissingRequiredIdentityError:
            logger.warning(
                "rate_limit.identity_missing",
                extra={"endpoint_class": class_name, "required": DEVICE_NAMESPACE},
            )
            raise

        decision = outcome.decision
        if decision is None:
            return

        headers = build_rate_limit_headers(decision) if settings.rate_limit.include_headers else {}

        if not decision.reached:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "endpoint_class": class_name,
                    **rate_limit_key_fields(outcome.key),
                    "limit": decision.limit,
                    "remaining": decision.remaining,
                },
            )
            for name, value in headers.items():
                response.headers[name] = value
            return

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "endpoint_class": class_name,
                **rate_limit_key_fields(outcome.key),
                "limit": decision.limit,
                "retry_after_s": decision.reset_after_seconds,
            },
        )

        details = {
            "endpoint_class": class_name,
            "limit": decision.limit,
            "remaining": 0,
            "retry_after": decision.reset_after_seconds,
            "reset_at": _format_reset_at(outcome.reset_at or 0),
        }
        if outcome.device_id:
            details["device_id"] = outcome.device_id

        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message=outcome.endpoint_class.exceeded_message(),
            details=details,
            headers=headers,
        )

    enforce_rate_limit.__name__ = f"limit_{class_name}"
    return enforce_rate_limit


limit_general = rate_limit_dependency(GENERAL)
limit_exports = rate_limit_dependency(EXPORT)
limit_sync = rate_limit_dependency(SYNC)
limit_restore = rate_limit_dependency(RESTORE)
