"""
Checker: claims the next audit event for the worker to process.
"""

from auditlog.config.logging import get_logger
from auditlog.v1.audits.models import Audit
from auditlog.v1.audits.service import AuditService
from auditlog.v1.core.context import WorkerContext
from auditlog.v1.worker.policy import RetryPolicy

logger = get_logger(__name__)


class Checker:
    """
    Claims at most one eligible audit event per call.

    Safe to call concurrently from many processes: the claim is a single
    conditional UPDATE, so an event is only ever handed to one caller until
    its claim goes stale. Store errors propagate; no retries happen here.
    """

    def __init__(self, ctx: WorkerContext, policy: RetryPolicy | None = None):
        self.ctx = ctx
        self.policy = policy or RetryPolicy.from_settings(ctx.settings)
        self.audits = AuditService(ctx.settings, ctx.registry)

    async def claim(self) -> Audit | None:
        """Claim the oldest eligible event, or return None if there is none."""
        async with self.ctx.transacting() as trx:
            event = await self.audits.claim_next_eligible(trx.session, self.policy)

        if event is not None:
            logger.info(
                "Claimed audit event",
                audit_id=event.id,
                action=event.action,
                failures=event.failures,
            )
        return event
