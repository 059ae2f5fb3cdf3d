"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Rate limiting introduces three outcomes that travel through this hierarchy:
- MissingRequiredIdentityError: a precondition failed before any counting.
- RateLimitExceededError: the primary rejection, rendered as HTTP 429.
- StoreUnavailableError: the counter store failed; callers fail open and it
  never reaches the client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    limit: int
    remaining: int
    reset_at: str
    endpoint_class: str
    device_id: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class MissingRequiredIdentityError(ValidationAppError):
    """Raised when an endpoint class needs an identity the request lacks.

    Raised before the limiter is consulted, so no quota is consumed.
    """


@dataclass
class RateLimitExceededError(AppError):
    """Raised when a request exceeds its endpoint class quota.

    Attributes:
        headers: Response headers (X-RateLimit-*, Retry-After) to send with
            the 429 response.
    """

    headers: dict[str, str] = field(default_factory=dict)


class StoreUnavailableError(AppError):
    """Raised by counter store backends when they cannot read or write."""
