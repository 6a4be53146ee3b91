"""
Data migration onto the new partitions.

Runs only after a live table write. Every step is fatal on failure and
nothing is rolled back: the disk already carries the new layout.

The data directory is copied, the copy is swapped into place, and the
original is deleted only after a recursive diff finds no difference.
Until then the data always exists in at least one complete location.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from dualroot.core.errors import CommandFailed, DataVerificationMismatch, MigrationStepFailed
from dualroot.core.logging import OperationLogger, get_logger

if TYPE_CHECKING:
    from dualroot.core.config import MigrationConfig
    from dualroot.core.models import RootPartitionRef
    from dualroot.platform.base import CommandResult, PlatformBackend

logger = get_logger(__name__)


def _require(result: CommandResult, step: str) -> CommandResult:
    if not result.success:
        raise CommandFailed(step, result.argv, result.returncode, result.stderr)
    return result


def fstab_entry(device: str, mount_point: Path, filesystem: str, options: str) -> str:
    return f"{device}\t{mount_point}\t{filesystem}\t{options}\t0\t2\n"


def append_fstab_entry(fstab_path: Path, entry: str) -> None:
    """Append ``entry`` to the fstab file, keeping the previous last line intact."""
    existing = fstab_path.read_text() if fstab_path.exists() else ""
    with open(fstab_path, "a") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(entry)


class DataMigrator:
    """Creates the new filesystems and moves the data directory onto its partition."""

    def __init__(self, backend: PlatformBackend, config: MigrationConfig) -> None:
        self.backend = backend
        self.config = config
        self.completed_steps: list[str] = []
        self.data_moved = False

    @property
    def data_directory(self) -> Path:
        return self.config.data_directory

    @property
    def backup_directory(self) -> Path:
        return self.config.backup_directory

    def _step(self, name: str, **context: object) -> OperationLogger:
        return OperationLogger(name, logger, **context)

    @contextmanager
    def _filesystem(self, step: str) -> Iterator[None]:
        """Report an OSError from ``step`` as a failure after the table write."""
        try:
            yield
        except OSError as e:
            backup = self.backup_directory if self.data_moved else None
            raise MigrationStepFailed(step, e, backup) from e

    def migrate(self, root: RootPartitionRef) -> None:
        second_root = root.partition_device(root.number + 1)
        data_partition = root.partition_device(root.number + 2)
        filesystem = self.config.filesystem

        with self._step("resize root filesystem", device=root.device):
            _require(self.backend.resize_filesystem(root.device), "Root filesystem resize")
        self.completed_steps.append("resize_root")

        with self._step("create second root filesystem", device=second_root):
            _require(
                self.backend.make_filesystem(second_root, filesystem),
                "Second root filesystem creation",
            )
        self.completed_steps.append("mkfs_second_root")

        with self._step("create data filesystem", device=data_partition):
            _require(
                self.backend.make_filesystem(data_partition, filesystem),
                "Data filesystem creation",
            )
        self.completed_steps.append("mkfs_data")

        self.copy_data(data_partition)
        self.swap_mount(data_partition)
        self.verify()

    def copy_data(self, data_partition: str) -> None:
        """
        Copy the data directory onto the new partition through a scratch mount.

        Once the scratch mount succeeded it is unmounted again even when
        the copy fails.
        """
        scratch = self.config.scratch_mount_point

        with self._step("copy data", source=str(self.data_directory), scratch=str(scratch)):
            with self._filesystem("Scratch directory creation"):
                scratch.mkdir(parents=True, exist_ok=True)
            _require(self.backend.mount(data_partition, scratch), "Scratch mount")
            try:
                _require(
                    self.backend.copy_tree(self.data_directory, scratch),
                    "Data copy",
                )
            finally:
                unmounted = self.backend.unmount(scratch)
            _require(unmounted, "Scratch unmount")
            with self._filesystem("Scratch directory removal"):
                scratch.rmdir()
        self.completed_steps.append("copy_data")

    def swap_mount(self, data_partition: str) -> None:
        """Move the old directory aside and mount the new partition in its place."""
        data_dir = self.data_directory
        backup = self.backup_directory

        with self._step("swap data mount", data=str(data_dir), backup=str(backup)):
            with self._filesystem("Data directory move"):
                data_dir.rename(backup)
            self.data_moved = True
            with self._filesystem("Data mount point creation"):
                data_dir.mkdir()
            with self._filesystem("fstab update"):
                append_fstab_entry(
                    self.config.fstab_path,
                    fstab_entry(
                        data_partition,
                        data_dir,
                        self.config.filesystem,
                        self.config.mount_options,
                    ),
                )
            _require(self.backend.mount(data_partition, data_dir), "Data mount")
        self.completed_steps.append("swap_mount")

    def verify(self) -> None:
        """
        Compare the backup with the mounted copy.

        The backup is removed only when both trees are identical; on any
        difference or comparison failure it is left in place.
        """
        data_dir = self.data_directory
        backup = self.backup_directory

        with self._step("verify data copy", backup=str(backup), data=str(data_dir)):
            result = self.backend.compare_trees(
                backup,
                data_dir,
                exclude=self.config.verify_exclude,
            )
            if result.returncode == 1:
                raise DataVerificationMismatch(backup, data_dir, result.stdout)
            _require(result, "Data verification")

            with self._filesystem("Backup removal"):
                shutil.rmtree(backup)
        self.completed_steps.append("verify")
