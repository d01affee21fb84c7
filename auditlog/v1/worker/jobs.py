"""
Jobs run by the event worker, and the default action-to-job wiring.

Jobs receive a transactional context: every write goes through
``ctx.session`` and is rolled back if any job for the event fails.
"""

from sqlalchemy import select

from auditlog.config.logging import get_logger
from auditlog.v1.audits.models import Audit, AuditAction
from auditlog.v1.core.context import WorkerContext
from auditlog.v1.core.registries import JobRegistry, job_registry
from auditlog.v1.worker.models import ActorActivity

logger = get_logger(__name__)


class RecordActorActivityJob:
    """Keeps the actor_activity summary up to date for events with an actor."""

    async def handle(self, ctx: WorkerContext, event: Audit) -> None:
        if not ctx.is_transacting:
            raise RuntimeError("RecordActorActivityJob requires a transactional context")

        if event.actor_id is None:
            logger.debug("Skipping activity for actorless event", audit_id=event.id)
            return

        result = await ctx.session.execute(
            select(ActorActivity)
            .where(ActorActivity.actor_id == event.actor_id)
            .with_for_update()
        )
        activity = result.scalar_one_or_none()

        if activity is None:
            ctx.session.add(
                ActorActivity(
                    actor_id=event.actor_id,
                    last_action=event.action,
                    last_audit_id=event.id,
                    last_seen_at=event.logged_at,
                    event_count=1,
                )
            )
        else:
            activity.event_count += 1
            # Events may be retried out of order; only move forward in time
            if event.logged_at >= activity.last_seen_at:
                activity.last_action = event.action
                activity.last_audit_id = event.id
                activity.last_seen_at = event.logged_at

        await ctx.session.flush()


def register_jobs(registry: JobRegistry) -> JobRegistry:
    """Wire the default jobs into ``registry``."""
    registry.register(
        AuditAction.SUBMISSION_ATTACHMENT_UPDATE, RecordActorActivityJob()
    )
    logger.info("Jobs registered", actions=registry.list())
    return registry


def build_job_registry() -> JobRegistry:
    """A fresh registry holding the default jobs."""
    return register_jobs(JobRegistry())


def init_job_registry() -> JobRegistry:
    """Populate and freeze the process-wide registry (idempotent)."""
    if not job_registry.is_frozen():
        register_jobs(job_registry)
        job_registry.freeze()
    return job_registry
