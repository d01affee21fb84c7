"""
Derived state materialized by worker jobs.
"""

from datetime import datetime

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from auditlog.infra.database import Base


class ActorActivity(Base):
    """Per-actor summary of the audit events processed by the worker."""

    __tablename__ = "actor_activity"

    actor_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_action: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Action of the latest processed event"
    )
    last_audit_id: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Latest processed audit event"
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        nullable=False, comment="logged_at of the latest processed event"
    )
    event_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Processed events for this actor"
    )
