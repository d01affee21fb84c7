"""Audit Log CLI - Main Entry Point"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from auditlog.config.settings import settings

from .commands import audits, worker

console = Console()

app = typer.Typer(
    name="auditlog",
    help="🗂 Audit Log - event worker and operations CLI",
    rich_markup_mode="rich",
)

app.add_typer(worker.app, name="worker")
app.add_typer(audits.app, name="audits")


@app.command()
def config():
    """🔧 Show the worker configuration in effect"""
    console.print(Panel(
        f"• Environment: [yellow]{settings.environment}[/yellow]\n"
        f"• Poll interval: [cyan]{settings.worker_poll_interval_ms} ms[/cyan]\n"
        f"• Max failures: [cyan]{settings.worker_max_failures}[/cyan]\n"
        f"• Failure backoff: [cyan]{settings.worker_failure_backoff_s} s[/cyan]\n"
        f"• Stale claim after: [cyan]{settings.worker_claim_stale_after_s} s[/cyan]",
        title="Worker Configuration",
        border_style="cyan",
    ))


def version_callback(value: bool):
    if value:
        console.print(f"Audit Log CLI v{settings.version}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """
    🗂 Audit Log CLI

    Run the background worker that processes audit events, and inspect or
    re-arm events whose jobs keep failing.
    """


if __name__ == "__main__":
    app()
