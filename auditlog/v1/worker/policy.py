"""
Retry and reclaim policy for audit event processing.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import ColumnElement, and_, or_

from auditlog.config.settings import Settings
from auditlog.v1.audits.models import Audit


@dataclass(frozen=True)
class RetryPolicy:
    """
    Decides which audit events a worker may claim.

    An event is eligible when it is unprocessed, has failed fewer than
    ``max_failures`` times, its last failure (if any) is older than
    ``failure_backoff``, and it is either unclaimed or its claim is older
    than ``claim_stale_after`` (the claimant is presumed dead or hung).
    """

    max_failures: int = 5
    failure_backoff: timedelta = timedelta(minutes=10)
    claim_stale_after: timedelta = timedelta(hours=2)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_failures=settings.worker_max_failures,
            failure_backoff=timedelta(seconds=settings.worker_failure_backoff_s),
            claim_stale_after=timedelta(seconds=settings.worker_claim_stale_after_s),
        )

    def eligible_clause(self, now: datetime, entity=Audit) -> ColumnElement[bool]:
        """SQL predicate selecting events claimable at ``now``."""
        return and_(
            entity.processed.is_(None),
            entity.failures < self.max_failures,
            or_(
                entity.last_failure.is_(None),
                entity.last_failure < now - self.failure_backoff,
            ),
            or_(
                entity.claimed.is_(None),
                entity.claimed < now - self.claim_stale_after,
            ),
        )

    def is_eligible(self, event: Audit, now: datetime) -> bool:
        """In-memory twin of eligible_clause, used for reporting."""
        if event.processed is not None or event.failures >= self.max_failures:
            return False
        if event.last_failure is not None and event.last_failure >= now - self.failure_backoff:
            return False
        if event.claimed is not None and event.claimed >= now - self.claim_stale_after:
            return False
        return True
