from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from rate_governor.core.auth import authenticate_request
from rate_governor.core.rate_limit import (
    EXPORT,
    GENERAL,
    RESTORE,
    SYNC,
    get_rate_limit_service,
    limit_exports,
    limit_general,
    limit_restore,
    limit_sync,
)
from rate_governor.schemas.operations import OperationAccepted, RateLimitPolicy

router = APIRouter(tags=["Operations"])


def _accepted(operation: str, endpoint_class: str) -> OperationAccepted:
    return OperationAccepted(
        operation=operation,
        endpoint_class=endpoint_class,
        accepted_at=datetime.now(timezone.utc),
    )


@router.get(
    "/status",
    response_model=OperationAccepted,
    dependencies=[Depends(authenticate_request), Depends(limit_general)],
)
async def get_status() -> OperationAccepted:
    """General-purpose endpoint governed by the general class (100/minute)."""
    return _accepted("status", GENERAL)


@router.get(
    "/rate-limits",
    response_model=list[RateLimitPolicy],
    dependencies=[Depends(authenticate_request), Depends(limit_general)],
)
async def list_rate_limits() -> list[RateLimitPolicy]:
    """Describe the configured rate for every endpoint class."""
    service = get_rate_limit_service()
    policies = []
    for name in (GENERAL, EXPORT, SYNC, RESTORE):
        endpoint_class = service.endpoint_class(name)
        policies.append(
            RateLimitPolicy(
                endpoint_class=name,
                limit=endpoint_class.rate.limit,
                period_seconds=endpoint_class.rate.period_seconds,
                key_suffix=endpoint_class.key_suffix,
                requires_device=endpoint_class.requires_device,
            )
        )
    return policies


@router.post(
    "/exports",
    response_model=OperationAccepted,
    status_code=202,
    dependencies=[Depends(authenticate_request), Depends(limit_exports)],
)
async def create_export() -> OperationAccepted:
    """Start a data export (10/hour per identity)."""
    return _accepted("export", EXPORT)


@router.post(
    "/sync",
    response_model=OperationAccepted,
    dependencies=[Depends(authenticate_request), Depends(limit_sync)],
)
async def sync_changes() -> OperationAccepted:
    """Sync client changes (60/minute per identity)."""
    return _accepted("sync", SYNC)


@router.post(
    "/restore",
    response_model=OperationAccepted,
    status_code=202,
    dependencies=[Depends(authenticate_request), Depends(limit_restore)],
)
async def restore_backup() -> OperationAccepted:
    """Restore a backup onto a device (1/hour per device).

    Requires ``device_id`` query parameter or ``X-Device-ID`` header.
    """
    return _accepted("restore", RESTORE)
