"""
Display utilities for presenting reconciliation results.
"""

from rich.console import Console
from rich.table import Table

from ..models import ReconcileOutcome, ReconcileResult, UpdaterConfig

console = Console()


def display_run_header(config: UpdaterConfig) -> None:
    """Display the target of this run."""
    console.print(
        f"[bold blue]🚀 Reconciling Talos node[/bold blue] [cyan]{config.node}[/cyan] "
        f"to tag [green]{config.tag}[/green]"
    )

    table = Table(title="Upgrade options")
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="yellow")
    table.add_row("Reboot mode", "powercycle" if config.powercycle else "default")
    table.add_row("Staged", "yes" if config.staged else "no")
    table.add_row("Attempts", str(config.attempts))
    table.add_row("Dry run", "yes" if config.dry_run else "no")
    console.print(table)


def display_result(result: ReconcileResult) -> None:
    """Display the outcome of a reconciliation pass."""
    if result.outcome == ReconcileOutcome.NO_CHANGE:
        display_success("✓ Node is already up-to-date. Nothing to do.")
    elif result.outcome == ReconcileOutcome.UPGRADE_PLANNED:
        console.print(f"[yellow]DRY RUN[/yellow] Would upgrade node to [green]{result.image}[/green].")
    elif result.outcome == ReconcileOutcome.UPGRADE_ISSUED:
        console.print(
            f"[bold green]✓[/bold green] Upgrade triggered to [green]{result.image}[/green]. "
            f"Response: [magenta]{result.message or 'N/A'}[/magenta]"
        )
    else:
        display_error(f"✗ Update process failed: {result.error}")


def display_waiting() -> None:
    console.print("[dim]Upgrade in flight. Waiting until terminated (Ctrl+C to exit)...[/dim]")


def display_error(message: str) -> None:
    """Display error message."""
    console.print(f"[red]{message}[/red]")


def display_warning(message: str) -> None:
    """Display warning message."""
    console.print(f"[yellow]{message}[/yellow]")


def display_success(message: str) -> None:
    """Display success message."""
    console.print(f"[green]{message}[/green]")
