"""Disk geometry discovery."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dualroot.core.errors import GeometryParseError, UnexpectedPartitionLayout
from dualroot.core.logging import get_logger
from dualroot.core.models import DiskGeometry, PartitionExtent, RootPartitionRef
from dualroot.platform.linux.parsers import parse_parted_machine

if TYPE_CHECKING:
    from dualroot.platform.base import PlatformBackend

logger = get_logger(__name__)

EXPECTED_PARTITION_COUNT = 2


def read_geometry(
    backend: PlatformBackend,
    root: RootPartitionRef,
    reject_existing_layout: bool = True,
) -> tuple[DiskGeometry, PartitionExtent]:
    """
    Read the disk size and the current root extent.

    The root extent is the last partition the disk lists: the disk is
    expected to hold exactly a boot and a root partition. With
    ``reject_existing_layout`` any other layout is refused, which also
    stops a second run on an already repartitioned disk.
    """
    result = backend.read_disk_geometry(root.disk)
    if not result.success:
        raise GeometryParseError(
            f"Could not read geometry of {root.disk}: {result.stderr.strip()}"
        )

    geometry, partitions = parse_parted_machine(result.stdout)
    last = partitions[-1]

    if reject_existing_layout:
        if len(partitions) != EXPECTED_PARTITION_COUNT:
            raise UnexpectedPartitionLayout(
                f"{root.disk} has {len(partitions)} partitions, expected "
                f"{EXPECTED_PARTITION_COUNT} (boot and root). Has it already been repartitioned?"
            )
        if last.number != root.number:
            raise UnexpectedPartitionLayout(
                f"Last partition on {root.disk} is {last.number}, "
                f"but root is partition {root.number}"
            )
    elif len(partitions) != EXPECTED_PARTITION_COUNT:
        logger.warning(
            "Unexpected partition count, using last partition as root",
            disk=root.disk,
            partitions=len(partitions),
        )

    if last.end > geometry.total_sectors:
        raise GeometryParseError(
            f"Partition {last.number} ends at sector {last.end}, "
            f"past the end of {root.disk} ({geometry.total_sectors})"
        )

    logger.info(
        "Read disk geometry",
        disk=geometry.device,
        total_sectors=geometry.total_sectors,
        root_start=last.start,
        root_size=last.size,
    )
    return geometry, last
