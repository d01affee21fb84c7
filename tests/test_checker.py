"""Tests for claiming audit events."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from auditlog.v1.audits.models import Audit
from auditlog.v1.worker.checker import Checker
from auditlog.v1.worker.policy import RetryPolicy


def ago(**kwargs) -> datetime:
    return datetime.now(UTC) - timedelta(**kwargs)


class TestChecker:
    """Test the eligibility and ordering rules of Checker.claim."""

    async def test_returns_none_without_unprocessed_events(self, ctx, make_audit):
        """Processed events are never claimed."""
        await make_audit("test.event", processed=datetime.now(UTC))

        assert await Checker(ctx).claim() is None

    async def test_returns_none_on_empty_store(self, ctx):
        assert await Checker(ctx).claim() is None

    async def test_marks_event_as_claimed(self, ctx, make_audit, fetch_audit, assert_recent):
        audit = await make_audit()

        event = await Checker(ctx).claim()

        assert event is not None
        assert event.id == audit.id
        assert_recent(event.claimed)

        stored = await fetch_audit(audit.id)
        assert stored.claimed == event.claimed

    async def test_does_not_claim_other_events(self, ctx, make_audit, database):
        for _ in range(3):
            await make_audit()

        await Checker(ctx).claim()

        async with database.SessionLocal() as session:
            result = await session.execute(select(Audit))
            claimed = [a for a in result.scalars().all() if a.claimed is not None]
        assert len(claimed) == 1

    async def test_returns_oldest_eligible_event(self, ctx, make_audit):
        await make_audit(details={"is": "oldest"}, logged_at=ago(minutes=3))
        await make_audit(details={"is": "older"}, logged_at=ago(minutes=2))
        await make_audit(details={"is": "newer"}, logged_at=ago(minutes=1))

        event = await Checker(ctx).claim()

        assert event.details == {"is": "oldest"}

    async def test_ties_on_logged_at_break_by_id(self, ctx, make_audit):
        logged_at = ago(minutes=1)
        first = await make_audit(logged_at=logged_at)
        await make_audit(logged_at=logged_at)

        event = await Checker(ctx).claim()

        assert event.id == first.id

    async def test_successive_claims_hand_out_distinct_events(self, ctx, make_audit):
        await make_audit(logged_at=ago(minutes=2))
        await make_audit(logged_at=ago(minutes=1))

        checker = Checker(ctx)
        first = await checker.claim()
        second = await checker.claim()
        third = await checker.claim()

        assert first.id != second.id
        assert third is None

    async def test_does_not_return_recently_failed_event(self, ctx, make_audit):
        await make_audit(failures=1, last_failure=datetime.now(UTC))

        assert await Checker(ctx).claim() is None

    async def test_retries_failed_event_after_backoff(self, ctx, make_audit):
        await make_audit(failures=4, last_failure=ago(minutes=11))

        assert await Checker(ctx).claim() is not None

    async def test_backoff_boundary(self, ctx, make_audit):
        """Just inside the backoff window is ineligible; just outside is eligible."""
        policy = RetryPolicy(failure_backoff=timedelta(minutes=10))
        await make_audit(failures=1, last_failure=ago(minutes=9, seconds=50))
        assert await Checker(ctx, policy).claim() is None

        late = await make_audit(failures=1, last_failure=ago(minutes=10, seconds=10))
        event = await Checker(ctx, policy).claim()
        assert event.id == late.id

    async def test_does_not_return_repeatedly_failed_event(self, ctx, make_audit):
        await make_audit(failures=6)
        await make_audit(failures=5, last_failure=ago(days=30))

        assert await Checker(ctx).claim() is None

    async def test_retry_cap_is_configurable(self, ctx, make_audit):
        await make_audit(failures=2, last_failure=ago(hours=1))

        assert await Checker(ctx, RetryPolicy(max_failures=2)).claim() is None
        assert await Checker(ctx, RetryPolicy(max_failures=3)).claim() is not None

    async def test_claims_stale_hung_event(self, ctx, make_audit, assert_recent):
        await make_audit(claimed=ago(hours=3))

        event = await Checker(ctx).claim()

        assert event is not None
        assert_recent(event.claimed)

    async def test_does_not_steal_fresh_claim(self, ctx, make_audit):
        await make_audit(claimed=ago(minutes=5))

        assert await Checker(ctx).claim() is None

    async def test_skips_ineligible_older_events(self, ctx, make_audit):
        await make_audit(logged_at=ago(hours=2), failures=6)
        await make_audit(logged_at=ago(hours=1), claimed=ago(minutes=1))
        eligible = await make_audit(logged_at=ago(minutes=1))

        event = await Checker(ctx).claim()

        assert event.id == eligible.id

    @pytest.mark.postgres
    async def test_concurrent_claims_never_share_an_event(self, ctx, make_audit, is_postgres):
        """
        Only runs when DATABASE_URL points at PostgreSQL; skipped on the default
        SQLite database, which ignores FOR UPDATE SKIP LOCKED.
        """
        if not is_postgres:
            pytest.skip("Concurrent claims need row locking (PostgreSQL)")

        for minutes in range(5, 0, -1):
            await make_audit(logged_at=ago(minutes=minutes))

        checkers = [Checker(ctx) for _ in range(8)]
        events = await asyncio.gather(*(checker.claim() for checker in checkers))

        claimed_ids = [event.id for event in events if event is not None]
        assert len(claimed_ids) == 5
        assert len(set(claimed_ids)) == 5
