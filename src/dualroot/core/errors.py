"""
dualroot error taxonomy.

Every failure raised by the repartitioning engine derives from
DualRootError and carries the stage it belongs to, so the terminal
report can tell a harmless early exit from a failure after the disk
has already been changed.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(Enum):
    """Stage of the run in which a failure was detected."""

    PRECONDITION = "precondition"
    DISCOVERY = "discovery"
    PLANNING = "planning"
    MUTATION = "mutation"
    POST_MUTATION = "post_mutation"


class DualRootError(Exception):
    """Base class for all dualroot failures."""

    category: ErrorCategory = ErrorCategory.DISCOVERY
    informational: bool = False

    @property
    def disk_modified(self) -> bool:
        """Whether the partition table may already have been rewritten."""
        return self.category == ErrorCategory.POST_MUTATION


# ==================== Preconditions ====================


class PreconditionError(DualRootError):
    category = ErrorCategory.PRECONDITION


class ContainerDetected(PreconditionError):
    """Running inside a container; nothing to repartition."""

    informational = True

    def __init__(self, technology: str) -> None:
        self.technology = technology
        super().__init__(
            f"Running inside a container ({technology}), nothing to do"
        )


class InsufficientPrivilege(PreconditionError):
    def __init__(self) -> None:
        super().__init__("This tool must be run as root")


class MissingTools(PreconditionError):
    def __init__(self, tools: list[str]) -> None:
        self.tools = tools
        super().__init__(f"Required tools not found: {', '.join(tools)}")


class MissingDataDirectory(PreconditionError):
    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"Data directory {path} does not exist")


class BackupPathExists(PreconditionError):
    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"Backup path {path} already exists, refusing to overwrite it")


# ==================== Discovery ====================


class DiscoveryError(DualRootError):
    category = ErrorCategory.DISCOVERY


class UnrecognizedRootDevice(DiscoveryError):
    def __init__(self, source: str | None) -> None:
        self.source = source
        super().__init__(f"Could not determine the root device (source: {source!r})")


class UnrecognizedDiskFamily(DiscoveryError):
    def __init__(self, device: str) -> None:
        self.device = device
        super().__init__(f"Unsupported disk type for root device {device}")


class NotAPartition(DiscoveryError):
    def __init__(self, device: str) -> None:
        self.device = device
        super().__init__(f"Root device {device} is a whole disk, not a partition")


class MissingPartitionNumber(DiscoveryError):
    def __init__(self, device: str) -> None:
        self.device = device
        super().__init__(f"Could not extract a partition number from {device}")


class UnexpectedPartitionLayout(DiscoveryError):
    pass


class GeometryParseError(DiscoveryError):
    pass


class TableParseError(DiscoveryError):
    pass


# ==================== Planning ====================


class PlanningError(DualRootError):
    category = ErrorCategory.PLANNING


class InsufficientSpace(PlanningError):
    def __init__(self, remaining: int) -> None:
        self.remaining = remaining
        super().__init__(
            f"Not enough free space on disk: {remaining} sectors left after growing root"
        )


# ==================== Mutation ====================


class MutationError(DualRootError):
    category = ErrorCategory.MUTATION


class TableWriteRejected(MutationError):
    def __init__(self, disk: str, stderr: str) -> None:
        self.disk = disk
        self.stderr = stderr
        super().__init__(f"sfdisk rejected the new partition table for {disk}: {stderr.strip()}")


# ==================== After the point of no return ====================


class PostMutationError(DualRootError):
    category = ErrorCategory.POST_MUTATION


class CommandFailed(PostMutationError):
    """An external tool failed after the partition table was rewritten."""

    def __init__(self, step: str, command: list[str], returncode: int, stderr: str) -> None:
        self.step = step
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"{step} failed ({' '.join(command)}): {detail}")


class MigrationStepFailed(PostMutationError):
    """A filesystem operation of the data migration failed after the table write."""

    def __init__(self, step: str, error: OSError, backup: object | None = None) -> None:
        self.step = step
        self.error = error
        self.backup = backup
        message = f"{step} failed: {error}"
        if backup is not None:
            message += f". The original data is preserved at {backup}"
        super().__init__(message)


class DataVerificationMismatch(PostMutationError):
    def __init__(self, backup: object, target: object, differences: str) -> None:
        self.backup = backup
        self.target = target
        self.differences = differences
        super().__init__(
            f"Data copy verification failed, {target} differs from {backup}. "
            f"The original data is preserved at {backup}"
        )
