"""pkpctl - Main Entry Point"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from pkp.config.logging import setup_logging
from pkp.config.settings import settings

from .commands import jobs

console = Console()

app = typer.Typer(
    name="pkpctl",
    help="🗂 PKP enrichment queue operator CLI",
    rich_markup_mode="rich",
)

app.add_typer(jobs.app, name="jobs")


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(Panel(
        f"🗂 [bold cyan]pkpctl[/bold cyan]\n\n"
        f"• Version: [green]{__version__}[/green]\n"
        f"• Environment: [yellow]{settings.environment}[/yellow]\n"
        f"• Provider: [magenta]{settings.enrichment_provider.value}[/magenta]",
        title="Version Info",
        border_style="cyan"
    ))


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", help="Show version and exit"
    ),
):
    """
    🗂 pkpctl - manage the note enrichment job queue

    Run batches of jobs, enqueue work, and inspect queue health directly
    against the configured database.
    """
    if version:
        from . import __version__
        console.print(f"pkpctl v{__version__}")
        raise typer.Exit()

    setup_logging()


if __name__ == "__main__":
    app()
