"""
Polling loop that drives the checker and runner.
"""

import asyncio
import os
import socket

from auditlog.config.logging import bind_worker_context, get_logger
from auditlog.v1.core.context import WorkerContext
from auditlog.v1.worker.checker import Checker
from auditlog.v1.worker.runner import Runner

logger = get_logger(__name__)


class EventWorker:
    """
    Claims audit events one at a time and waits for their jobs to finish.

    Several workers, in one process or many, may poll the same database; the
    checker's atomic claim keeps them from processing an event twice.
    """

    def __init__(
        self,
        ctx: WorkerContext,
        checker: Checker | None = None,
        runner: Runner | None = None,
    ):
        self.ctx = ctx
        self.checker = checker or Checker(ctx)
        self.runner = runner or Runner()
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False

    async def run_once(self) -> bool:
        """Claim and process one event. Returns False when there was nothing to do."""
        event = await self.checker.claim()
        done = asyncio.Event()
        if not self.runner.dispatch(self.ctx, event, done.set):
            return False
        await done.wait()
        # Bookkeeping errors surface here so the poll loop backs off
        await self.runner.drain()
        return True

    async def start(self) -> None:
        """Poll until stop() is called."""
        if self.running:
            raise RuntimeError("Worker is already running")

        self.running = True
        bind_worker_context(worker_id=self.worker_id)
        poll_interval = self.ctx.settings.worker_poll_interval_ms / 1000
        logger.info("Starting event worker", poll_interval_ms=self.ctx.settings.worker_poll_interval_ms)

        try:
            while self.running:
                try:
                    worked = await self.run_once()
                except Exception:
                    logger.exception("Error in worker loop")
                    await asyncio.sleep(poll_interval * 2)
                    continue

                # Keep draining the backlog without pausing
                if not worked:
                    await asyncio.sleep(poll_interval)
        finally:
            self.running = False

    async def stop(self) -> None:
        """Stop polling and wait for in-flight jobs to finish."""
        logger.info("Stopping event worker")
        self.running = False
        try:
            await self.runner.drain()
        except Exception:
            logger.exception("In-flight audit event failed during shutdown")


# Worker instance management
_worker_instance: EventWorker | None = None


def get_worker(ctx: WorkerContext) -> EventWorker:
    """Get or create the global worker instance."""
    global _worker_instance
    if _worker_instance is None:
        _worker_instance = EventWorker(ctx)
    return _worker_instance
