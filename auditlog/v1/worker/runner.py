"""
Runner: executes the jobs registered for a claimed audit event.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

from auditlog.config.logging import get_logger
from auditlog.v1.audits.models import Audit
from auditlog.v1.audits.service import AuditService
from auditlog.v1.core.context import WorkerContext
from auditlog.v1.core.registries import JobHandler, JobRegistry
from auditlog.v1.worker.reporting import report_safely

logger = get_logger(__name__)

Continuation = Callable[[], None]


class Runner:
    """
    Dispatches audit events to their jobs.

    ``dispatch`` decides synchronously whether there is anything to do and,
    if so, runs the jobs in a background task. The continuation fires exactly
    once when that task finishes, whatever the outcome, and never fires for
    a dispatch that returned False.
    """

    def __init__(self, registry: JobRegistry | None = None):
        self.registry = registry
        self.tasks: set[asyncio.Task] = set()
        self.errors: list[BaseException] = []

    def dispatch(
        self,
        ctx: WorkerContext,
        event: Audit | None,
        continuation: Continuation,
    ) -> bool:
        """Schedule the jobs for ``event``; must be called inside a running loop."""
        if event is None:
            return False

        registry = self.registry if self.registry is not None else ctx.registry
        handlers = registry.handlers_for(event.action)
        if not handlers:
            return False

        task = asyncio.get_running_loop().create_task(
            self._run(ctx, event, handlers, continuation),
            name=f"audit-{event.id}",
        )
        self.tasks.add(task)
        task.add_done_callback(self._task_done)
        return True

    async def drain(self) -> None:
        """Wait for in-flight dispatches, re-raising bookkeeping errors."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks), return_exceptions=True)
        if self.errors:
            errors, self.errors = self.errors, []
            raise errors[0]

    async def _run(
        self,
        ctx: WorkerContext,
        event: Audit,
        handlers: tuple[JobHandler, ...],
        continuation: Continuation,
    ) -> None:
        audits = AuditService(ctx.settings, ctx.registry)
        event_logger = logger.bind(audit_id=event.id, action=event.action)

        try:
            try:
                async with ctx.transacting() as trx:
                    failure = await self._run_jobs(trx, event, handlers)
                    if failure is not None:
                        # Leaving the block with an error rolls the jobs back
                        raise failure
                    await audits.mark_processed(trx.session, event.id, datetime.now(UTC))
            except (Exception, asyncio.CancelledError) as error:
                event_logger.warning(
                    "Audit event jobs failed",
                    error=repr(error),
                    failures=(event.failures or 0) + 1,
                )
                report_safely(ctx.reporter, error)

                async with ctx.transacting() as trx:
                    await audits.mark_failed(trx.session, event.id, datetime.now(UTC))

                if isinstance(error, asyncio.CancelledError):
                    raise
            else:
                event_logger.info("Audit event processed", jobs=len(handlers))
        finally:
            continuation()

    async def _run_jobs(
        self,
        trx: WorkerContext,
        event: Audit,
        handlers: tuple[JobHandler, ...],
    ) -> Exception | None:
        """
        Run every job in registration order, returning the first failure.

        Jobs share ``trx.session``, which must not be used concurrently. A failing job does not stop the others.
        """
        failure = None
        for handler in handlers:
            try:
                await handler.handle(trx, event)
            except Exception as error:
                if failure is None:
                    failure = error
        return failure

    def _task_done(self, task: asyncio.Task) -> None:
        self.tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.errors.append(error)
            logger.error(
                "Audit event bookkeeping failed",
                task=task.get_name(),
                exc_info=(type(error), error, error.__traceback__),
            )
