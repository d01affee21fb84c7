"""Worker Commands - Run the audit event worker"""

import asyncio

import typer
from rich.console import Console

from auditlog.config.settings import settings
from auditlog.v1.audits.models import Audit
from auditlog.v1.core.context import WorkerContext
from auditlog.v1.worker.checker import Checker
from auditlog.v1.worker.loop import get_worker
from auditlog.v1.worker.runner import Runner

from ..utils.formatting import print_error, print_info, print_success, print_warning
from ..utils.runtime import run_with_context

console = Console()
app = typer.Typer(name="worker", help="Audit event worker commands")


async def _run_worker(ctx: WorkerContext) -> None:
    worker = get_worker(ctx)
    try:
        await worker.start()
    except asyncio.CancelledError:
        await worker.stop()
        raise


async def _check_once(ctx: WorkerContext) -> tuple[Audit | None, bool]:
    """Claim one event and wait for its jobs. Returns (event, dispatched)."""
    event = await Checker(ctx).claim()
    runner = Runner()
    done = asyncio.Event()
    dispatched = runner.dispatch(ctx, event, done.set)
    if dispatched:
        await done.wait()
        await runner.drain()
    return event, dispatched


@app.command("run")
def run_worker():
    """⚙️ Poll for audit events and run their jobs until interrupted"""
    if not settings.worker_enabled:
        print_warning("Event worker is disabled (WORKER_ENABLED=false)")
        raise typer.Exit(1)

    print_info("Starting audit event worker (Ctrl+C to stop)...")
    try:
        run_with_context(_run_worker)
    except KeyboardInterrupt:
        print_warning("Worker stopped")


@app.command("check")
def check_once():
    """🔎 Claim a single eligible event and run its jobs"""
    try:
        event, dispatched = run_with_context(_check_once)
    except Exception as e:
        print_error(f"Check failed: {e}")
        raise typer.Exit(1) from None

    if event is None:
        print_info("No eligible audit events")
    elif not dispatched:
        print_warning(f"Audit {event.id} ({event.action}) has no jobs registered")
    else:
        print_success(f"Audit {event.id} ({event.action}) dispatched")
