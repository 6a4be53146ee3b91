"""
Partition table mutation.

Renders the new sfdisk document (old root line removed, three new lines
appended), stages it in a temporary file and feeds it to sfdisk, either
in simulate-only mode or for real.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from dualroot.core.errors import CommandFailed, TableParseError, TableWriteRejected
from dualroot.core.logging import get_logger
from dualroot.core.models import (
    LINUX_TYPE_DOS,
    LINUX_TYPE_GPT,
    LayoutPlan,
    PartitionLine,
    PartitionTableDocument,
    RootPartitionRef,
    RunMode,
)
from dualroot.platform.linux.parsers import parse_sfdisk_dump

if TYPE_CHECKING:
    from dualroot.platform.base import PlatformBackend

logger = get_logger(__name__)


def linux_type_code(label: str | None, override: str | None = None) -> str:
    """Partition type code of a Linux filesystem partition for a table label."""
    if override:
        return override
    if label == "gpt":
        return LINUX_TYPE_GPT
    return LINUX_TYPE_DOS


def render_new_table(
    document: PartitionTableDocument,
    root: RootPartitionRef,
    plan: LayoutPlan,
    type_code: str | None = None,
) -> PartitionTableDocument:
    """Return a copy of ``document`` describing the planned layout."""
    new_document = document.copy()
    try:
        new_document.remove(root.device)
    except KeyError:
        raise TableParseError(
            f"Root partition {root.device} not found in the partition table of {root.disk}"
        ) from None

    type_code = linux_type_code(document.label, type_code)
    for offset, extent in enumerate(plan.extents()):
        new_document.append(
            PartitionLine(
                device=root.partition_device(root.number + offset),
                start=extent.start,
                size=extent.size,
                type_code=type_code,
            )
        )
    return new_document


@contextmanager
def staged_table(
    document: PartitionTableDocument,
    keep: bool = False,
) -> Iterator[Path]:
    """Write ``document`` to a uniquely named temporary file for the duration of the block."""
    fd, name = tempfile.mkstemp(prefix="dualroot-", suffix=".sfdisk")
    path = Path(name)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(document.render())
        logger.debug("Staged partition table", path=str(path))
        yield path
    finally:
        if keep:
            logger.info("Keeping staged partition table", path=str(path))
        else:
            path.unlink(missing_ok=True)


class TableMutator:
    """Reads, rewrites and applies a disk's partition table."""

    def __init__(self, backend: PlatformBackend, keep_staged: bool = False) -> None:
        self.backend = backend
        self.keep_staged = keep_staged

    def read_table(self, disk_path: str) -> PartitionTableDocument:
        result = self.backend.dump_partition_table(disk_path)
        if not result.success:
            raise TableParseError(
                f"Could not dump partition table of {disk_path}: {result.stderr.strip()}"
            )
        return parse_sfdisk_dump(result.stdout)

    def apply(
        self,
        disk_path: str,
        document: PartitionTableDocument,
        mode: RunMode,
    ) -> None:
        """
        Apply ``document`` to the disk.

        In LIVE mode this is the point of no return: once sfdisk succeeds
        the disk carries the new layout.
        """
        dry_run = mode is RunMode.DRY_RUN

        with staged_table(document, keep=self.keep_staged) as path:
            result = self.backend.apply_partition_table(disk_path, path, dry_run=dry_run)

        if not result.success:
            raise TableWriteRejected(disk_path, result.stderr or result.stdout)

        if dry_run:
            logger.info("Partition table validated (not written)", disk=disk_path)
            return

        logger.warning("Partition table written", disk=disk_path)

        result = self.backend.reread_partition_table(disk_path)
        if not result.success:
            raise CommandFailed(
                "Partition table re-read",
                result.argv,
                result.returncode,
                result.stderr,
            )
