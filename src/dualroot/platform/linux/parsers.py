"""
Linux output parsers.

Parsers for parted machine output and sfdisk dumps. They take tool output
as text and never run anything, so they can be tested in isolation.
"""

from __future__ import annotations

import re

from dualroot.core.errors import GeometryParseError, TableParseError
from dualroot.core.models import (
    SECTOR_SIZE,
    DiskGeometry,
    PartitionExtent,
    PartitionLine,
    PartitionTableDocument,
)

_SECTORS_RE = re.compile(r"^(\d+)s$")
# Comma separated fields, commas inside quoted values (GPT names) preserved
_ATTR_RE = re.compile(r'(?:[^,"]|"[^"]*")+')


def parse_sectors(value: str, field_name: str) -> int:
    """Parse a parted sector value such as ``532480s``."""
    match = _SECTORS_RE.match(value.strip())
    if not match:
        raise GeometryParseError(f"Malformed {field_name}: {value!r}")
    return int(match.group(1))


def parse_parted_machine(output: str) -> tuple[DiskGeometry, list[PartitionExtent]]:
    """
    Parse ``parted -m <disk> unit s print`` output.

    Example input:
    BYT;
    /dev/mmcblk0:31116288s:sd/mmc:512:512:msdos:SD SC32G:;
    1:8192s:532479s:524288s:fat32::lba;
    2:532480s:4530175s:3997696s:ext4::;
    """
    geometry: DiskGeometry | None = None
    partitions: list[PartitionExtent] = []

    for line in output.strip().splitlines():
        line = line.strip().rstrip(";")
        if not line or line in ("BYT", "CHS", "CYL"):
            continue

        fields = line.split(":")

        if fields[0].startswith("/"):
            if len(fields) < 2:
                raise GeometryParseError(f"Malformed disk record: {line!r}")
            total = parse_sectors(fields[1], "disk size")
            sector_size = SECTOR_SIZE
            if len(fields) > 3 and fields[3].isdigit():
                sector_size = int(fields[3])
            geometry = DiskGeometry(
                device=fields[0],
                total_sectors=total,
                sector_size=sector_size,
            )
        elif fields[0].isdigit():
            if len(fields) < 4:
                raise GeometryParseError(f"Malformed partition record: {line!r}")
            number = int(fields[0])
            start = parse_sectors(fields[1], f"start of partition {number}")
            size = parse_sectors(fields[3], f"size of partition {number}")
            if size == 0:
                raise GeometryParseError(f"Partition {number} has zero size")
            partitions.append(
                PartitionExtent(
                    start=start,
                    size=size,
                    type_code=fields[4] if len(fields) > 4 and fields[4] else None,
                    number=number,
                )
            )
        else:
            raise GeometryParseError(f"Unexpected line in parted output: {line!r}")

    if geometry is None:
        raise GeometryParseError("No disk record in parted output")
    if not partitions:
        raise GeometryParseError(f"No partitions listed for {geometry.device}")

    return geometry, partitions


def parse_partition_attrs(attrs_str: str) -> dict[str, str]:
    """Parse ``start=..., size=..., type=83, bootable`` into a dict."""
    attrs: dict[str, str] = {}
    for attr in _ATTR_RE.findall(attrs_str):
        attr = attr.strip()
        if not attr:
            continue
        if "=" in attr:
            key, value = attr.split("=", 1)
            attrs[key.strip()] = value.strip()
        else:
            attrs[attr] = ""
    return attrs


def parse_sfdisk_dump(output: str) -> PartitionTableDocument:
    """
    Parse ``sfdisk --dump`` output into a table document.

    Example input:
    label: dos
    label-id: 0x5d3d2e3a
    device: /dev/mmcblk0
    unit: sectors
    sector-size: 512

    /dev/mmcblk0p1 : start=        8192, size=      524288, type=c
    /dev/mmcblk0p2 : start=      532480, size=     3997696, type=83
    """
    document = PartitionTableDocument()

    for raw_line in output.strip().splitlines():
        line = raw_line.rstrip()

        if line.startswith("/dev/"):
            device, sep, attrs_str = line.partition(":")
            if not sep:
                raise TableParseError(f"Malformed partition line: {line!r}")
            attrs = parse_partition_attrs(attrs_str)

            start = attrs.pop("start", None)
            size = attrs.pop("size", None)
            if start is None or not start.isdigit():
                raise TableParseError(f"Missing or invalid start in: {line!r}")
            if size is None or not size.isdigit():
                raise TableParseError(f"Missing or invalid size in: {line!r}")

            document.lines.append(
                PartitionLine(
                    device=device.strip(),
                    start=int(start),
                    size=int(size),
                    type_code=attrs.pop("type", None) or attrs.pop("Id", None),
                    attrs=attrs,
                    raw=line,
                )
            )
        elif line.strip():
            if document.lines:
                raise TableParseError(f"Header line after partition lines: {line!r}")
            if ":" not in line:
                raise TableParseError(f"Unexpected line in sfdisk dump: {line!r}")
            document.header.append(line)

    if document.label is None:
        raise TableParseError("sfdisk dump has no label header")

    return document
