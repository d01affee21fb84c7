"""Rich Formatting Utilities for CLI Output"""

from collections.abc import Iterable
from datetime import UTC, datetime

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from auditlog.v1.audits.models import Audit
from auditlog.v1.audits.schemas import AuditQueueStats
from auditlog.v1.worker.policy import RetryPolicy

console = Console()


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S")


def describe_state(audit: Audit, policy: RetryPolicy, now: datetime) -> str:
    """Short human label for where an event stands with the worker."""
    if audit.processed is not None:
        return "processed"
    if audit.is_exhausted(policy.max_failures):
        return "exhausted"
    if policy.is_eligible(audit, now):
        return "eligible"
    if audit.claimed is not None and audit.claimed >= now - policy.claim_stale_after:
        return "claimed"
    return "backing off"


def create_audits_table(
    audits: Iterable[Audit], policy: RetryPolicy, title: str = "Audit Events"
) -> Table:
    """Create a formatted table of audit events and their worker state"""
    now = datetime.now(UTC)
    table = Table(title=title, box=box.ROUNDED)

    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Action", justify="left", style="magenta")
    table.add_column("Logged", justify="left", style="white")
    table.add_column("Failures", justify="center", style="red")
    table.add_column("Last Failure", justify="left", style="yellow")
    table.add_column("State", justify="center", style="green")

    for audit in audits:
        table.add_row(
            str(audit.id),
            audit.action,
            format_timestamp(audit.logged_at),
            f"{audit.failures}/{policy.max_failures}",
            format_timestamp(audit.last_failure),
            describe_state(audit, policy, now),
        )

    return table


def create_queue_panel(stats: AuditQueueStats) -> Panel:
    """Create a panel summarizing the worker backlog"""
    style = "red" if stats.exhausted else "green"
    return Panel(
        f"• Unprocessed: [cyan]{stats.unprocessed}[/cyan]\n"
        f"• Claimed: [blue]{stats.claimed}[/blue]\n"
        f"• Failing (will retry): [yellow]{stats.failing}[/yellow]\n"
        f"• Exhausted (needs retry): [red]{stats.exhausted}[/red]",
        title="Event Queue",
        border_style=style,
    )
