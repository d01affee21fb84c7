"""
Audit event store: append, claim and progress tracking for audit events.

Methods flush but never commit; the caller owns the transaction. This is what
lets jobs log audits and the runner mark events processed inside one
transactional scope.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from auditlog.config.settings import Settings
from auditlog.v1.audits.models import Audit
from auditlog.v1.audits.schemas import AuditQueueStats
from auditlog.v1.core.registries import JobRegistry, job_registry
from auditlog.v1.worker.policy import RetryPolicy

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class AuditService:
    """Service for logging audit events and tracking their processing."""

    def __init__(self, settings: Settings, registry: JobRegistry | None = None):
        self.settings = settings
        self.registry = registry if registry is not None else job_registry

    async def log(
        self,
        session: AsyncSession,
        action: str,
        actor_id: int | None = None,
        actee_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> Audit:
        """
        Append an audit event.

        Events whose action has no registered jobs are stamped processed
        right away so the worker never has to look at them.
        """
        action = str(getattr(action, "value", action))
        now = _now()
        audit = Audit(
            action=action,
            actor_id=actor_id,
            actee_id=actee_id,
            details=details,
            logged_at=now,
            processed=None if self.registry.has_jobs(action) else now,
        )
        session.add(audit)
        await session.flush()

        logger.info(
            "Audit logged",
            extra={
                "audit_id": audit.id,
                "action": action,
                "pending_jobs": audit.processed is None,
            },
        )
        return audit

    async def claim_next_eligible(
        self,
        session: AsyncSession,
        policy: RetryPolicy,
        now: datetime | None = None,
    ) -> Audit | None:
        """
        Atomically claim the oldest eligible event.

        A single UPDATE ... RETURNING whose target is picked by a row-locking
        subquery (SKIP LOCKED on Postgres), so two workers never claim the
        same event. The predicate is repeated on the outer UPDATE to recheck
        the row after the lock is taken.
        """
        now = now or _now()
        # Aliased so the subquery is not correlated against the UPDATE target
        row = aliased(Audit, name="candidate")
        candidate = (
            select(row.id)
            .where(policy.eligible_clause(now, row))
            .order_by(row.logged_at, row.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        result = await session.execute(
            update(Audit)
            .where(and_(Audit.id == candidate, policy.eligible_clause(now)))
            .values(claimed=now)
            .returning(Audit)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def mark_processed(
        self, session: AsyncSession, audit_id: int, now: datetime | None = None
    ) -> bool:
        """Stamp an event processed. An existing stamp is never overwritten."""
        result = await session.execute(
            update(Audit)
            .where(and_(Audit.id == audit_id, Audit.processed.is_(None)))
            .values(processed=now or _now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def mark_failed(
        self, session: AsyncSession, audit_id: int, now: datetime | None = None
    ) -> bool:
        """Count a failed attempt and release the claim so the event can be retried."""
        result = await session.execute(
            update(Audit)
            .where(and_(Audit.id == audit_id, Audit.processed.is_(None)))
            .values(
                failures=Audit.failures + 1,
                last_failure=now or _now(),
                claimed=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def retry(self, session: AsyncSession, audit_id: int) -> bool:
        """Re-arm an unprocessed event, including one that exhausted its retries."""
        result = await session.execute(
            update(Audit)
            .where(and_(Audit.id == audit_id, Audit.processed.is_(None)))
            .values(failures=0, last_failure=None, claimed=None)
            .execution_options(synchronize_session=False)
        )
        success = result.rowcount > 0
        if success:
            logger.info("Audit re-armed for processing", extra={"audit_id": audit_id})
        return success

    async def get_by_id(self, session: AsyncSession, audit_id: int) -> Audit | None:
        result = await session.execute(select(Audit).where(Audit.id == audit_id))
        return result.scalar_one_or_none()

    async def get_latest_by_action(
        self, session: AsyncSession, action: str
    ) -> Audit | None:
        """Get the most recently logged event for an action."""
        result = await session.execute(
            select(Audit)
            .where(Audit.action == str(getattr(action, "value", action)))
            .order_by(Audit.logged_at.desc(), Audit.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_audits(
        self,
        session: AsyncSession,
        action: str | None = None,
        failed_only: bool = False,
        unprocessed_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Audit], int]:
        """List events newest first, returning the page and the total count."""
        query = select(Audit)

        if action:
            query = query.where(Audit.action == action)
        if failed_only:
            query = query.where(Audit.failures > 0)
        if unprocessed_only:
            query = query.where(Audit.processed.is_(None))

        total_result = await session.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = total_result.scalar() or 0

        result = await session.execute(
            query.order_by(Audit.logged_at.desc(), Audit.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def queue_stats(
        self, session: AsyncSession, policy: RetryPolicy
    ) -> AuditQueueStats:
        """Count unprocessed events by worker state."""
        unprocessed = Audit.processed.is_(None)

        async def count(*criteria) -> int:
            result = await session.execute(
                select(func.count(Audit.id)).where(unprocessed, *criteria)
            )
            return result.scalar() or 0

        return AuditQueueStats(
            unprocessed=await count(),
            claimed=await count(Audit.claimed.is_not(None)),
            failing=await count(
                Audit.failures > 0, Audit.failures < policy.max_failures
            ),
            exhausted=await count(Audit.failures >= policy.max_failures),
        )
