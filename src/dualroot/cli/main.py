"""
dualroot CLI Main Entry Point.

Dry run by default; ``--live`` applies the new layout.
"""

from __future__ import annotations

import sys

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dualroot import __version__
from dualroot.core.config import load_config
from dualroot.core.logging import get_logger, setup_logging
from dualroot.core.models import OutcomeKind, PartitionExtent, RunMode
from dualroot.core.orchestrator import Orchestrator, PlanSummary
from dualroot.core.report import EXIT_ERROR, EXIT_INTERRUPTED, RunOutcome
from dualroot.platform import get_platform_backend

console = Console()
error_console = Console(stderr=True)

logger = get_logger(__name__)


def format_sectors(sectors: int, sector_size: int) -> str:
    return f"{sectors} sectors ({humanize.naturalsize(sectors * sector_size, binary=True)})"


def render_plan(summary: PlanSummary) -> None:
    """Show the current root, the planned partitions and the proposed table."""
    geometry = summary.geometry
    sector_size = geometry.sector_size
    root = summary.root
    root_extent = summary.root_extent

    table = Table(title=f"Planned layout for {root.disk}")
    table.add_column("#", style="dim")
    table.add_column("Device", style="cyan")
    table.add_column("Role", style="white")
    table.add_column("Start", style="yellow")
    table.add_column("End", style="yellow")
    table.add_column("Size", style="green")

    rows: list[tuple[str, PartitionExtent]] = [
        ("root (grown)", summary.plan.root),
        ("second root", summary.plan.second_root),
        ("data", summary.plan.data),
    ]
    for offset, (role, extent) in enumerate(rows):
        number = root.number + offset
        table.add_row(
            str(number),
            root.partition_device(number),
            role,
            str(extent.start),
            str(extent.last_sector),
            format_sectors(extent.size, sector_size),
        )

    console.print(
        f"Disk [cyan]{root.disk}[/cyan]: {geometry.total_sectors} sectors "
        f"({humanize.naturalsize(geometry.size_bytes, binary=True)}), "
        f"root [cyan]{root.device}[/cyan] at {root_extent.start}, "
        f"{format_sectors(root_extent.size, sector_size)}"
    )
    console.print(table)

    title = "Proposed partition table" if summary.mode is RunMode.DRY_RUN else "New partition table"
    console.print(Panel(Text(summary.new_table.render().rstrip()), title=title, expand=False))

    if summary.mode is RunMode.DRY_RUN:
        console.print(summary.execution_plan.get_plan_text(), markup=False)
        console.print()


def report_outcome(outcome: RunOutcome) -> None:
    if outcome.kind is OutcomeKind.ERROR:
        error_console.print(f"Error: {outcome.message}", style="red", markup=False)
    elif outcome.kind is OutcomeKind.INFO:
        console.print(outcome.message, markup=False)
    else:
        console.print(outcome.message, style="green", markup=False)


@click.command()
@click.option(
    "--live",
    is_flag=True,
    help="Apply the changes. Without it only a dry run is performed.",
)
def cli(live: bool) -> None:
    """
    Grow the root partition, add a second root and a data partition.

    Doubles the root partition, creates an equally sized second root
    partition after it, and gives the rest of the disk to a data
    partition that the data directory is migrated onto.
    """
    config = load_config()
    setup_logging(config.logging)
    logger.debug("dualroot starting", version=__version__, live=live)

    orchestrator = Orchestrator(config, get_platform_backend(), on_plan=render_plan)
    result = orchestrator.run(RunMode.LIVE if live else RunMode.DRY_RUN)

    report_outcome(result.outcome)
    sys.exit(result.outcome.exit_code)


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        error_console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        error_console.print(f"Error: {e}", style="red", markup=False)
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
