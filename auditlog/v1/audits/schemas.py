"""
Audit event Pydantic schemas.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditCreate(BaseModel):
    """Schema for logging a new audit event."""

    action: str = Field(..., min_length=1, description="Audit action, e.g. form.update")
    actor_id: int | None = Field(default=None, description="Acting user")
    actee_id: str | None = Field(default=None, description="Target of the action")
    details: dict[str, Any] | None = Field(default=None, description="Job input data")


class AuditResponse(BaseModel):
    """Schema for audit event API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    actor_id: int | None = None
    actee_id: str | None = None
    details: dict[str, Any] | None = None
    logged_at: datetime

    # Worker bookkeeping
    claimed: datetime | None = None
    processed: datetime | None = None
    failures: int = 0
    last_failure: datetime | None = None


class AuditListResponse(BaseModel):
    """Schema for audit list API response."""

    audits: list[AuditResponse]
    total: int
    limit: int
    offset: int


class AuditQueueStats(BaseModel):
    """Counters describing the worker's backlog."""

    unprocessed: int
    claimed: int
    failing: int
    exhausted: int
