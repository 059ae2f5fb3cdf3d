"""Client identity resolution for rate limit keys.

A rate limit key is ``{namespace}:{value}[:{suffix}]``. The namespace records
how the client was identified and is picked by trying resolvers in the order
given by IDENTITY_RESOLUTION_ORDER:

1. ``user:``   authenticated user id (set by authentication on request.state)
2. ``device:`` device id from the ``device_id`` query param or ``X-Device-ID``
3. ``ip:``     network source address (always resolves)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Request

USER_NAMESPACE = "user"
DEVICE_NAMESPACE = "device"
NETWORK_NAMESPACE = "ip"

DEVICE_ID_QUERY_PARAM = "device_id"
DEVICE_ID_HEADER = "X-Device-ID"


@dataclass(frozen=True)
class IdentitySignals:
    """Raw identity signals extracted from a request."""

    user_id: str | None = None
    device_id_param: str | None = None
    device_id_header: str | None = None
    client_host: str | None = None


IdentityResolver = Callable[[IdentitySignals], str | None]


def resolve_device_id(signals: IdentitySignals) -> str | None:
    """Return the device id, preferring the query parameter over the header.

    Surrounding whitespace is stripped; a blank value counts as absent.
    """
    for candidate in (signals.device_id_param, signals.device_id_header):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def resolve_user_identity(signals: IdentitySignals) -> str | None:
    if signals.user_id:
        return f"{USER_NAMESPACE}:{signals.user_id}"
    return None


def resolve_device_identity(signals: IdentitySignals) -> str | None:
    device_id = resolve_device_id(signals)
    if device_id:
        return f"{DEVICE_NAMESPACE}:{device_id}"
    return None


def resolve_network_identity(signals: IdentitySignals) -> str:
    return f"{NETWORK_NAMESPACE}:{signals.client_host or 'unknown'}"


IDENTITY_RESOLUTION_ORDER: tuple[IdentityResolver, ...] = (
    resolve_user_identity,
    resolve_device_identity,
    resolve_network_identity,
)


def resolve_identity(
    signals: IdentitySignals,
    resolvers: tuple[IdentityResolver, ...] = IDENTITY_RESOLUTION_ORDER,
) -> str:
    """Return the first identity any resolver produces.

    Raises:
        LookupError: If no resolver produced an identity (only possible with
            a custom resolver tuple lacking a network fallback).
    """
    for resolver in resolvers:
        identity = resolver(signals)
        if identity:
            return identity
    raise LookupError("no identity resolver matched the request")


def build_rate_limit_key(identity: str, suffix: str | None = None) -> str:
    """Append the endpoint class suffix to a base identity key.

    Examples:
        >>> build_rate_limit_key("user:42")
        'user:42'
        >>> build_rate_limit_key("user:42", "export")
        'user:42:export'
    """
    if suffix:
        return f"{identity}:{suffix}"
    return identity


def signals_from_request(request: Request) -> IdentitySignals:
    """Collect identity signals from an incoming FastAPI request."""
    return IdentitySignals(
        user_id=getattr(request.state, "user_id", None),
        device_id_param=request.query_params.get(DEVICE_ID_QUERY_PARAM),
        device_id_header=request.headers.get(DEVICE_ID_HEADER),
        client_host=request.client.host if request.client else None,
    )
