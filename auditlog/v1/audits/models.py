"""
Audit event model.

Every domain action is appended here as a durable audit event. Events whose
action has jobs registered are picked up later by the event worker, which
tracks its progress on the same row (claimed / processed / failures).
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Index, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from auditlog.infra.database import Base


class AuditAction(str, Enum):
    """Known audit actions."""

    USER_CREATE = "user.create"
    USER_UPDATE = "user.update"
    FORM_CREATE = "form.create"
    FORM_UPDATE = "form.update"
    SUBMISSION_CREATE = "submission.create"
    SUBMISSION_ATTACHMENT_CREATE = "submission.attachment.create"
    SUBMISSION_ATTACHMENT_UPDATE = "submission.attachment.update"


class Audit(Base):
    """A logged domain action, doubling as the worker's unit of work."""

    __tablename__ = "audits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Dispatch key matched against the job registry"
    )
    actor_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Who triggered the action"
    )
    actee_id: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="What the action was performed on"
    )
    details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Job input data"
    )
    logged_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=lambda: datetime.now(UTC),
        comment="Creation time; defines FIFO processing order",
    )

    # Worker bookkeeping
    claimed: Mapped[datetime | None] = mapped_column(
        nullable=True, comment="When a worker took ownership; NULL when unclaimed"
    )
    processed: Mapped[datetime | None] = mapped_column(
        nullable=True, comment="When all jobs succeeded; set once, never cleared"
    )
    failures: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Failed processing attempts",
    )
    last_failure: Mapped[datetime | None] = mapped_column(
        nullable=True, comment="Time of the most recent failed attempt"
    )

    __table_args__ = (
        Index("ix_audits_action_logged_at", "action", "logged_at"),
        Index(
            "ix_audits_unprocessed_logged_at",
            "logged_at",
            "id",
            postgresql_where=text("processed IS NULL"),
            sqlite_where=text("processed IS NULL"),
        ),
    )

    def is_exhausted(self, max_failures: int) -> bool:
        """Check if the event has used up its retry budget."""
        return self.processed is None and self.failures >= max_failures

    def __repr__(self) -> str:
        return f"<Audit id={self.id} action={self.action!r} failures={self.failures}>"
