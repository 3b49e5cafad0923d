"""Rich formatting helpers for pkpctl output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "queued": "yellow",
    "running": "cyan",
    "succeeded": "green",
    "failed": "red",
}


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


def create_stats_table(stats: dict[str, Any]) -> Table:
    """Create a formatted table of job counts by status and type"""
    table = Table(title="Job Queue", box=box.ROUNDED)

    table.add_column("Group", justify="left", style="bold")
    table.add_column("Key", justify="left", style="magenta")
    table.add_column("Count", justify="right", style="cyan")

    for status, count in sorted(stats.get("by_status", {}).items()):
        style = STATUS_STYLES.get(status, "white")
        table.add_row("status", f"[{style}]{status}[/{style}]", str(count))

    for job_type, count in sorted(stats.get("by_type", {}).items()):
        table.add_row("type", job_type, str(count))

    table.add_row("", "[bold]total[/bold]", str(stats.get("total_jobs", 0)))
    return table


def create_queue_panel(stats: dict[str, Any]) -> Panel:
    """Summarize queue health in a panel"""
    stale = stats.get("stale_leases", 0)
    border = "red" if stale else "green"
    content = (
        f"• Queue depth: [cyan]{stats.get('queue_depth', 0)}[/cyan]\n"
        f"• Stale leases: [{'red' if stale else 'green'}]{stale}[/]"
    )
    return Panel(content, title="Queue Health", border_style=border)


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Render a single job record"""
    status = job.get("status", "")
    style = STATUS_STYLES.get(status, "white")

    lines = [
        f"• Type: [magenta]{job.get('type')}[/magenta]",
        f"• Owner: {job.get('owner')}",
        f"• Status: [{style}]{status}[/{style}]",
        f"• Attempts: {job.get('attempts')}/{job.get('max_attempts')}",
        f"• Run after: {job.get('run_after')}",
        f"• Payload: [dim]{job.get('payload')}[/dim]",
    ]
    if job.get("locked_by"):
        lines.append(f"• Locked by: {job['locked_by']} at {job.get('locked_at')}")
    if job.get("duration_ms") is not None:
        lines.append(f"• Duration: {job['duration_ms']} ms")
    if job.get("tokens_estimate") is not None:
        lines.append(f"• Tokens: {job['tokens_estimate']}")
    if job.get("last_error"):
        lines.append(f"• Last error: [red]{job['last_error']}[/red]")

    return Panel("\n".join(lines), title=f"Job {job.get('id')}", border_style=style)
