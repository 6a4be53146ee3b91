"""
dualroot Platform Backend Base.

Defines the capability interface through which the engine reaches the
disk and filesystem tools. The engine never runs a tool directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def argv(self) -> list[str]:
        return self.command.split() if isinstance(self.command, str) else list(self.command)

    def __repr__(self) -> str:
        cmd = self.command if isinstance(self.command, str) else " ".join(self.command)
        return f"CommandResult(rc={self.returncode}, cmd='{cmd[:50]}...')"


class PlatformBackend(ABC):
    """Abstract base class for the external disk and filesystem capabilities."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Platform name (e.g., 'linux')."""

    @abstractmethod
    def is_admin(self) -> bool:
        """Check if running with root privileges."""

    @abstractmethod
    def detect_container(self) -> str | None:
        """Return the container technology in use, or None on bare metal/VM."""

    @abstractmethod
    def missing_tools(self, live: bool = False, filesystem: str = "ext4") -> list[str]:
        """Tools required for a dry (or live) run that are not installed."""

    # ==================== Inspection ====================

    @abstractmethod
    def find_mount_source(self, mount_point: str) -> str | None:
        """Block device mounted at ``mount_point``."""

    @abstractmethod
    def read_disk_geometry(self, disk_path: str) -> CommandResult:
        """Machine readable sector geometry of a disk (parted -m)."""

    @abstractmethod
    def dump_partition_table(self, disk_path: str) -> CommandResult:
        """sfdisk dump of a disk's partition table."""

    # ==================== Partition table ====================

    @abstractmethod
    def apply_partition_table(
        self,
        disk_path: str,
        table_file: Path,
        dry_run: bool = True,
    ) -> CommandResult:
        """
        Feed a staged sfdisk document to the disk.
        With dry_run the table is validated but never written.
        """

    @abstractmethod
    def reread_partition_table(self, disk_path: str) -> CommandResult:
        """Ask the kernel to pick up the new partition table."""

    # ==================== Filesystems ====================

    @abstractmethod
    def resize_filesystem(self, partition_path: str) -> CommandResult:
        """Grow a filesystem to fill its partition, online."""

    @abstractmethod
    def make_filesystem(self, partition_path: str, filesystem: str) -> CommandResult:
        """Create a fresh filesystem on a partition."""

    @abstractmethod
    def mount(self, source: str | Path, mount_point: Path | None = None) -> CommandResult:
        """Mount a device, or an fstab entry when ``mount_point`` is omitted."""

    @abstractmethod
    def unmount(self, target: str | Path) -> CommandResult:
        """Unmount a device or mount point."""

    # ==================== Data ====================

    @abstractmethod
    def copy_tree(self, source: Path, destination: Path) -> CommandResult:
        """Recursively copy the contents of ``source`` into ``destination``, preserving attributes."""

    @abstractmethod
    def compare_trees(
        self,
        left: Path,
        right: Path,
        exclude: list[str] | None = None,
    ) -> CommandResult:
        """
        Recursively compare two directory trees.
        Exit status 0 means identical, 1 means differences, anything else is trouble.
        """
