import asyncio

import pytest

from auditlog.v1.audits.models import Audit
from auditlog.v1.audits.service import AuditService
from auditlog.v1.worker import loop
from auditlog.v1.worker.loop import EventWorker


class SucceedingJob:
    def __init__(self):
        self.seen = []

    async def handle(self, ctx, event):
        self.seen.append(event.id)


class FlakyChecker:
    """Fails on the first claim, then finds nothing."""

    def __init__(self):
        self.calls = 0

    async def claim(self):
        self.calls += 1
        if self.calls == 1:
            raise ConnectionError("database restarting")
        return None


@pytest.fixture
def fast_ctx(ctx, test_settings):
    return ctx.with_(settings=test_settings.model_copy(update={"worker_poll_interval_ms": 10}))


async def wait_for(condition, timeout=5.0):
    async def poll():
        while not await condition():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


async def test_run_once_without_events(ctx):
    assert await EventWorker(ctx).run_once() is False


async def test_run_once_processes_one_event(ctx, registry, make_audit, fetch_audit):
    job = SucceedingJob()
    registry.register("test.event", job)
    first = await make_audit("test.event")
    second = await make_audit("test.event")

    worker = EventWorker(ctx)
    assert await worker.run_once() is True

    assert job.seen == [first.id]
    assert (await fetch_audit(first.id)).processed is not None
    assert (await fetch_audit(second.id)).processed is None


async def test_run_once_with_jobless_event(ctx, make_audit):
    await make_audit("test.unwired")

    assert await EventWorker(ctx).run_once() is False


async def test_loop_drains_backlog_until_stopped(fast_ctx, registry, make_audit, fetch_audit):
    job = SucceedingJob()
    registry.register("test.event", job)
    events = [await make_audit("test.event") for _ in range(3)]

    worker = EventWorker(fast_ctx)
    task = asyncio.create_task(worker.start())

    async def all_processed():
        return all([(await fetch_audit(e.id)).processed is not None for e in events])

    await wait_for(all_processed)
    await worker.stop()
    await asyncio.wait_for(task, timeout=5)

    assert job.seen == [e.id for e in events]
    assert worker.running is False


async def test_loop_survives_checker_errors(fast_ctx):
    checker = FlakyChecker()
    worker = EventWorker(fast_ctx, checker=checker)
    task = asyncio.create_task(worker.start())

    async def retried():
        return checker.calls >= 3

    await wait_for(retried)
    await worker.stop()
    await asyncio.wait_for(task, timeout=5)


async def test_start_twice_is_rejected(ctx):
    worker = EventWorker(ctx)
    worker.running = True

    with pytest.raises(RuntimeError, match="already running"):
        await worker.start()


async def test_get_worker_returns_process_instance(ctx, monkeypatch):
    monkeypatch.setattr(loop, "_worker_instance", None)

    worker = loop.get_worker(ctx)

    assert loop.get_worker(ctx) is worker
    assert worker.ctx is ctx


class FailingJob:
    async def handle(self, ctx, event):
        raise RuntimeError("job failed")


class EndlessChecker:
    """Hands out a fresh unsaved event on every claim."""

    def __init__(self):
        self.calls = 0

    async def claim(self):
        self.calls += 1
        return Audit(id=-self.calls, action="test.event", failures=0)


async def broken_mark_failed(self, session, audit_id, now=None):
    raise ConnectionError("database went away")


async def test_run_once_raises_bookkeeping_errors(ctx, registry, monkeypatch):
    monkeypatch.setattr(AuditService, "mark_failed", broken_mark_failed)
    registry.register("test.event", FailingJob())
    worker = EventWorker(ctx, checker=EndlessChecker())

    with pytest.raises(ConnectionError):
        await worker.run_once()

    assert worker.runner.errors == []
    assert worker.runner.tasks == set()


async def test_loop_backs_off_on_bookkeeping_errors(fast_ctx, registry, monkeypatch):
    monkeypatch.setattr(AuditService, "mark_failed", broken_mark_failed)
    registry.register("test.event", FailingJob())
    checker = EndlessChecker()
    worker = EventWorker(fast_ctx, checker=checker)

    errors_seen = 0
    original_sleep = asyncio.sleep

    async def counting_sleep(delay, *args, **kwargs):
        nonlocal errors_seen
        # Error backoff is twice the 10 ms poll interval
        if delay == pytest.approx(0.02):
            errors_seen += 1
        return await original_sleep(delay, *args, **kwargs)

    monkeypatch.setattr(loop.asyncio, "sleep", counting_sleep)
    task = asyncio.create_task(worker.start())

    async def backed_off_twice():
        return errors_seen >= 2

    await wait_for(backed_off_twice)
    await worker.stop()
    await asyncio.wait_for(task, timeout=5)

    assert worker.runner.errors == []
