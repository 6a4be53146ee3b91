"""
dualroot orchestration.

Sequences preflight checks, root identification, geometry discovery,
layout planning, the table write and, in live mode, the data migration.
Each run ends in exactly one outcome recorded by TerminalReport.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from dualroot.core.device import identify_root_partition
from dualroot.core.geometry import read_geometry
from dualroot.core.logging import (
    OperationLogger,
    bind_run_context,
    clear_run_context,
    get_logger,
)
from dualroot.core.migration import DataMigrator
from dualroot.core.models import (
    DiskGeometry,
    LayoutPlan,
    PartitionExtent,
    PartitionTableDocument,
    RootPartitionRef,
    RunMode,
)
from dualroot.core.planner import plan_layout
from dualroot.core.report import RunOutcome, RunReport, TerminalReport
from dualroot.core.safety import (
    ExecutionPlan,
    PreflightChecker,
    PreflightContext,
    create_standard_preflight_checker,
)
from dualroot.core.table import TableMutator, linux_type_code, render_new_table

if TYPE_CHECKING:
    from pathlib import Path

    from dualroot.core.config import DualRootConfig
    from dualroot.platform.base import PlatformBackend

logger = get_logger(__name__)


@dataclass
class PlanSummary:
    """Everything known once planning is done, before anything is written."""

    mode: RunMode
    root: RootPartitionRef
    root_extent: PartitionExtent
    geometry: DiskGeometry
    disk_end: int
    plan: LayoutPlan
    current_table: PartitionTableDocument
    new_table: PartitionTableDocument
    execution_plan: ExecutionPlan


@dataclass
class RunResult:
    outcome: RunOutcome
    summary: PlanSummary | None = None
    report_path: Path | None = None


class Orchestrator:
    """Runs the repartitioning end to end."""

    def __init__(
        self,
        config: DualRootConfig,
        backend: PlatformBackend,
        preflight: PreflightChecker | None = None,
        on_plan: Callable[[PlanSummary], None] | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.preflight = preflight or create_standard_preflight_checker()
        self.on_plan = on_plan
        self.mutator = TableMutator(backend, keep_staged=config.safety.keep_staged_table)
        self.summary: PlanSummary | None = None

    def run(self, mode: RunMode = RunMode.DRY_RUN) -> RunResult:
        report = RunReport(mode=mode)
        report_path = self.config.get_report_file() if self.config.report_enabled else None
        self.summary = None

        bind_run_context(run_id=report.run_id, mode=mode.value)
        logger.info("Run started")
        try:
            with TerminalReport(report, report_path) as terminal:
                self._execute(mode, report, terminal)
        finally:
            clear_run_context()

        return RunResult(
            outcome=terminal.final_outcome,
            summary=self.summary,
            report_path=report_path,
        )

    def _execute(self, mode: RunMode, report: RunReport, terminal: TerminalReport) -> None:
        self._check_preconditions(mode)
        report.add_step("preflight")

        self.summary = summary = self._plan(mode, report)
        if self.on_plan is not None:
            self.on_plan(summary)

        disk = summary.root.disk
        with OperationLogger("apply partition table", logger, disk=disk):
            self.mutator.apply(disk, summary.new_table, mode)
        report.add_step("apply_table", written=mode is RunMode.LIVE)

        if mode is RunMode.DRY_RUN:
            terminal.succeed(
                f"Dry run complete, no changes made to {disk}. "
                "Run again with --live to apply."
            )
            return

        migrator = DataMigrator(self.backend, self.config.migration)
        try:
            migrator.migrate(summary.root)
        finally:
            for step in migrator.completed_steps:
                report.add_step(step)
        terminal.succeed(
            f"Repartitioned {disk}: root grown, second root at "
            f"{summary.root.partition_device(summary.root.number + 1)}, data on "
            f"{summary.root.partition_device(summary.root.number + 2)} "
            f"mounted at {self.config.migration.data_directory}"
        )

    def _check_preconditions(self, mode: RunMode) -> None:
        context = PreflightContext(backend=self.backend, config=self.config, mode=mode)
        preflight_report = self.preflight.run_checks(context)
        if not preflight_report.all_passed:
            logger.info("Preflight checks failed", summary=preflight_report.get_summary())
        preflight_report.raise_for_failure()

    def _plan(self, mode: RunMode, report: RunReport) -> PlanSummary:
        safety = self.config.safety
        layout = self.config.layout

        root = identify_root_partition(self.backend, layout.root_mount_point)
        report.root_partition = root.device

        geometry, root_extent = read_geometry(
            self.backend,
            root,
            reject_existing_layout=safety.reject_existing_layout,
        )
        root = root.with_extent(root_extent)
        report.geometry = {
            "device": geometry.device,
            "total_sectors": geometry.total_sectors,
            "sector_size": geometry.sector_size,
            "root": root_extent.to_dict(),
        }

        current_table = self.mutator.read_table(root.disk)
        disk_end = self._disk_end(geometry, current_table)
        type_code = linux_type_code(current_table.label, layout.partition_type)

        plan = plan_layout(
            disk_end,
            root_extent.start,
            root_extent.size,
            alignment=layout.alignment_sectors,
            type_code=type_code,
            root_number=root.number,
        )
        report.plan = plan.to_dict()
        logger.info("Planned layout", **plan.to_dict())

        new_table = render_new_table(current_table, root, plan, type_code)

        return PlanSummary(
            mode=mode,
            root=root,
            root_extent=root_extent,
            geometry=geometry,
            disk_end=disk_end,
            plan=plan,
            current_table=current_table,
            new_table=new_table,
            execution_plan=self._execution_plan(root, plan),
        )

    @staticmethod
    def _disk_end(geometry: DiskGeometry, table: PartitionTableDocument) -> int:
        """Last usable sector + 1; GPT keeps its backup header at the end of the disk."""
        if table.last_lba is not None:
            return min(geometry.total_sectors, table.last_lba + 1)
        return geometry.total_sectors

    def _execution_plan(self, root: RootPartitionRef, plan: LayoutPlan) -> ExecutionPlan:
        migration = self.config.migration
        second_root = root.partition_device(root.number + 1)
        data = root.partition_device(root.number + 2)

        def describe(extent: PartitionExtent) -> str:
            return f"start={extent.start}, size={extent.size}"

        return ExecutionPlan(
            description="Grow root, add second root and data partition",
            target=root.disk,
            steps=[
                f"Rewrite partition table of {root.disk}: "
                f"{root.device} ({describe(plan.root)}), "
                f"{second_root} ({describe(plan.second_root)}), "
                f"{data} ({describe(plan.data)})",
                f"Re-read partition table of {root.disk}",
                f"Grow filesystem on {root.device}",
                f"Create {migration.filesystem} on {second_root} and {data}",
                f"Copy {migration.data_directory} to {data} via {migration.scratch_mount_point}",
                f"Move {migration.data_directory} to {migration.backup_directory}, "
                f"mount {data} at {migration.data_directory} and add it to {migration.fstab_path}",
                f"Verify the copy and delete {migration.backup_directory}",
            ],
            warnings=[
                "The partition table rewrite cannot be undone automatically.",
                "A failure after the rewrite leaves the disk in the new layout.",
            ],
        )
