"""
Root device identification.

Maps the block device behind the root mount to its disk and partition
number. Only two naming families are understood: SCSI-style ``sdX<n>``
and MMC-style ``mmcblkN p<n>``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from dualroot.core.errors import (
    MissingPartitionNumber,
    NotAPartition,
    UnexpectedPartitionLayout,
    UnrecognizedDiskFamily,
    UnrecognizedRootDevice,
)
from dualroot.core.logging import get_logger
from dualroot.core.models import DiskFamily, RootPartitionRef

if TYPE_CHECKING:
    from dualroot.platform.base import PlatformBackend

logger = get_logger(__name__)

_DISK_PATTERNS = {
    DiskFamily.SCSI: re.compile(r"^(sd[a-z]+)"),
    DiskFamily.MMC: re.compile(r"^(mmcblk\d+)"),
}


def decode_partition_device(source: str | None) -> RootPartitionRef:
    """
    Decode a partition device path into (disk, partition number).

    ``/dev/mmcblk0p2`` -> (``/dev/mmcblk0``, 2), ``/dev/sda3`` -> (``/dev/sda``, 3).
    """
    if not source or not source.strip():
        raise UnrecognizedRootDevice(source)

    source = source.strip()
    if source.startswith("/dev/"):
        name = source[len("/dev/") :]
    elif "/" in source:
        raise UnrecognizedRootDevice(source)
    else:
        name = source

    for family, pattern in _DISK_PATTERNS.items():
        match = pattern.match(name)
        if match:
            break
    else:
        raise UnrecognizedDiskFamily(source)

    disk_name = match.group(1)
    if name == disk_name:
        raise NotAPartition(source)

    suffix = name[len(disk_name) :]
    number_match = re.fullmatch(re.escape(family.separator) + r"(\d+)", suffix)
    if not number_match:
        raise MissingPartitionNumber(source)

    number = int(number_match.group(1))
    if number < 1:
        raise MissingPartitionNumber(source)

    return RootPartitionRef(disk=f"/dev/{disk_name}", number=number, family=family)


def identify_root_partition(backend: PlatformBackend, mount_point: str = "/") -> RootPartitionRef:
    """Find the partition backing ``mount_point`` from live mount state."""
    source = backend.find_mount_source(mount_point)
    logger.debug("Root mount source", mount_point=mount_point, source=source)

    if source is None:
        raise UnrecognizedRootDevice(None)

    root = decode_partition_device(source)
    if root.number < 2:
        raise UnexpectedPartitionLayout(
            f"Root is partition {root.number} of {root.disk}; "
            "expected a boot partition in front of it"
        )

    logger.info("Identified root partition", disk=root.disk, partition=root.number)
    return root
