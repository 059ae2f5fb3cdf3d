"""Pydantic schemas for rate limited operation responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class OperationAccepted(BaseModel):
    """Acknowledgement returned by a rate limited operation endpoint."""

    operation: str = Field(
        ..., description="Operation name: status, export, sync or restore."
    )
    endpoint_class: str = Field(
        ..., description="Rate limit endpoint class that governed the request."
    )
    accepted_at: datetime = Field(
        ..., description="UTC timestamp at which the request was admitted."
    )


class RateLimitPolicy(BaseModel):
    """Configured rate for one endpoint class."""

    endpoint_class: str
    limit: int = Field(..., description="Maximum requests per window.")
    period_seconds: float = Field(..., description="Window length in seconds.")
    key_suffix: str | None = Field(
        default=None, description="Suffix appended to the identity key."
    )
    requires_device: bool = Field(
        default=False, description="Whether a device id is mandatory."
    )
