"""Audit Commands - Inspect and re-arm audit events"""

import typer
from rich.console import Console

from auditlog.config.settings import settings
from auditlog.v1.audits.models import Audit
from auditlog.v1.audits.schemas import AuditQueueStats
from auditlog.v1.audits.service import AuditService
from auditlog.v1.core.context import WorkerContext
from auditlog.v1.worker.policy import RetryPolicy

from ..utils.formatting import (
    create_audits_table,
    create_queue_panel,
    print_error,
    print_info,
    print_success,
)
from ..utils.runtime import run_with_context

console = Console()
app = typer.Typer(name="audits", help="Audit event inspection commands")


@app.command("failures")
def show_failures(
    limit: int = typer.Option(20, "--limit", "-l", help="Number of events to show"),
):
    """💥 Show unprocessed events that have failed at least once"""

    async def _load(ctx: WorkerContext) -> list[Audit]:
        async with ctx.transacting() as trx:
            audits, _ = await AuditService(ctx.settings, ctx.registry).list_audits(
                trx.session, failed_only=True, unprocessed_only=True, limit=limit
            )
        return audits

    try:
        audits = run_with_context(_load)
    except Exception as e:
        print_error(f"Failed to load audit events: {e}")
        raise typer.Exit(1) from None

    if not audits:
        print_success("No failing audit events")
        return

    policy = RetryPolicy.from_settings(settings)
    console.print(create_audits_table(audits, policy, title="Failing Audit Events"))


@app.command("stats")
def show_stats():
    """📊 Show the worker backlog"""

    async def _load(ctx: WorkerContext) -> AuditQueueStats:
        async with ctx.transacting() as trx:
            return await AuditService(ctx.settings, ctx.registry).queue_stats(
                trx.session, RetryPolicy.from_settings(ctx.settings)
            )

    try:
        stats = run_with_context(_load)
    except Exception as e:
        print_error(f"Failed to load queue stats: {e}")
        raise typer.Exit(1) from None

    console.print(create_queue_panel(stats))


@app.command("retry")
def retry_audit(audit_id: int = typer.Argument(..., help="Audit event ID")):
    """🔁 Reset an unprocessed event's failures so the worker retries it"""

    async def _retry(ctx: WorkerContext) -> bool:
        async with ctx.transacting() as trx:
            return await AuditService(ctx.settings, ctx.registry).retry(
                trx.session, audit_id
            )

    try:
        retried = run_with_context(_retry)
    except Exception as e:
        print_error(f"Retry failed: {e}")
        raise typer.Exit(1) from None

    if retried:
        print_success(f"Audit {audit_id} will be retried")
    else:
        print_info(f"Audit {audit_id} not found or already processed")
        raise typer.Exit(1)
