"""
dualroot preflight checks.

Every check runs before the disk is touched. A failing check carries the
error the orchestrator raises for it; the first failure in check order
wins, so a container is reported before a missing privilege.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from dualroot.core.errors import (
    BackupPathExists,
    ContainerDetected,
    DualRootError,
    InsufficientPrivilege,
    MissingDataDirectory,
    MissingTools,
    PreconditionError,
)
from dualroot.core.logging import get_logger
from dualroot.core.models import RunMode

if TYPE_CHECKING:
    from dualroot.core.config import DualRootConfig
    from dualroot.platform.base import PlatformBackend

logger = get_logger(__name__)


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    severity: str = "info"  # info, warning, error
    error: DualRootError | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def all_passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def first_failure(self) -> PreflightCheck | None:
        for check in self.checks:
            if not check.passed:
                return check
        return None

    def raise_for_failure(self) -> None:
        """Raise the error of the first failed check, if any."""
        failure = self.first_failure
        if failure is None:
            return
        if failure.error is not None:
            raise failure.error
        raise PreconditionError(f"{failure.name}: {failure.message}")

    def get_summary(self) -> str:
        """Get human-readable summary."""
        lines = [f"Preflight Check Report ({self.timestamp.isoformat()})"]
        passed = sum(1 for c in self.checks if c.passed)
        lines.append(f"Results: {passed}/{len(self.checks)} checks passed")

        for check in self.checks:
            status = "✓" if check.passed else "✗"
            lines.append(f"[{status}] {check.name}: {check.message}")

        return "\n".join(lines)


@dataclass
class PreflightContext:
    """Everything a check may look at."""

    backend: PlatformBackend
    config: DualRootConfig
    mode: RunMode


CheckFunc = Callable[[PreflightContext], PreflightCheck]


class PreflightChecker:
    """Performs preflight checks before operations."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, CheckFunc]] = []

    def add_check(self, name: str, check_func: CheckFunc) -> None:
        """Add a preflight check function."""
        self._checks.append((name, check_func))

    def run_checks(self, context: PreflightContext) -> PreflightReport:
        """Run all preflight checks and return report."""
        report = PreflightReport()

        for name, check_func in self._checks:
            try:
                report.checks.append(check_func(context))
            except OSError as e:
                report.checks.append(
                    PreflightCheck(
                        name=name,
                        passed=False,
                        message=f"Check failed with error: {e}",
                        severity="error",
                    )
                )

        for check in report.checks:
            logger.debug(
                "Preflight check",
                check=check.name,
                passed=check.passed,
                message=check.message,
            )
        return report


def check_container(context: PreflightContext) -> PreflightCheck:
    """Refuse to repartition from inside a container."""
    if not context.config.safety.container_check_enabled:
        return PreflightCheck(name="Container", passed=True, message="Check disabled")

    technology = context.backend.detect_container()
    if technology:
        return PreflightCheck(
            name="Container",
            passed=False,
            message=f"Running inside {technology}",
            error=ContainerDetected(technology),
        )
    return PreflightCheck(name="Container", passed=True, message="Not in a container")


def check_privilege(context: PreflightContext) -> PreflightCheck:
    if not context.config.safety.require_root or context.backend.is_admin():
        return PreflightCheck(name="Privilege", passed=True, message="Running as root")
    return PreflightCheck(
        name="Privilege",
        passed=False,
        message="Not running as root",
        severity="error",
        error=InsufficientPrivilege(),
    )


def check_tools(context: PreflightContext) -> PreflightCheck:
    missing = context.backend.missing_tools(
        live=context.mode is RunMode.LIVE,
        filesystem=context.config.migration.filesystem,
    )
    if missing:
        return PreflightCheck(
            name="Tools",
            passed=False,
            message=f"Missing: {', '.join(missing)}",
            severity="error",
            error=MissingTools(missing),
            details={"missing": missing},
        )
    return PreflightCheck(name="Tools", passed=True, message="All required tools found")


def check_data_directory(context: PreflightContext) -> PreflightCheck:
    """The directory to migrate must exist before the table is rewritten."""
    data_dir = context.config.migration.data_directory
    if context.mode is not RunMode.LIVE or data_dir.is_dir():
        return PreflightCheck(name="Data directory", passed=True, message=str(data_dir))
    return PreflightCheck(
        name="Data directory",
        passed=False,
        message=f"{data_dir} is not a directory",
        severity="error",
        error=MissingDataDirectory(data_dir),
    )


def check_backup_path(context: PreflightContext) -> PreflightCheck:
    backup = context.config.migration.backup_directory
    if context.mode is not RunMode.LIVE or not os.path.lexists(backup):
        return PreflightCheck(name="Backup path", passed=True, message=str(backup))
    return PreflightCheck(
        name="Backup path",
        passed=False,
        message=f"{backup} already exists",
        severity="error",
        error=BackupPathExists(backup),
    )


def check_scratch_mount_point(context: PreflightContext) -> PreflightCheck:
    scratch: Path = context.config.migration.scratch_mount_point
    if context.mode is not RunMode.LIVE or not scratch.exists():
        return PreflightCheck(name="Scratch mount point", passed=True, message=str(scratch))

    if os.path.ismount(scratch):
        problem = f"{scratch} is already a mount point"
    elif not scratch.is_dir():
        problem = f"{scratch} exists and is not a directory"
    elif any(scratch.iterdir()):
        problem = f"{scratch} is not empty"
    else:
        return PreflightCheck(name="Scratch mount point", passed=True, message=str(scratch))

    return PreflightCheck(
        name="Scratch mount point",
        passed=False,
        message=problem,
        severity="error",
        error=PreconditionError(problem),
    )


def create_standard_preflight_checker() -> PreflightChecker:
    """Create a preflight checker with standard checks."""
    checker = PreflightChecker()
    checker.add_check("Container", check_container)
    checker.add_check("Privilege", check_privilege)
    checker.add_check("Tools", check_tools)
    checker.add_check("Data directory", check_data_directory)
    checker.add_check("Backup path", check_backup_path)
    checker.add_check("Scratch mount point", check_scratch_mount_point)
    return checker


@dataclass
class ExecutionPlan:
    """Human-readable plan of what a live run would do."""

    description: str
    target: str
    steps: list[str]
    warnings: list[str] = field(default_factory=list)

    def get_plan_text(self) -> str:
        """Get human-readable plan text."""
        lines = [f"OPERATION: {self.description}", f"TARGET: {self.target}"]

        if self.warnings:
            lines.append("")
            lines.append("WARNINGS:")
            for warning in self.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        lines.append("EXECUTION STEPS:")
        for i, step in enumerate(self.steps, 1):
            lines.append(f"   {i}. {step}")

        return "\n".join(lines)
