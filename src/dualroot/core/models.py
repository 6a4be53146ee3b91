"""
dualroot data models.

Defines the disk geometry snapshots, partition extents, the layout plan
and the sfdisk table document the engine works on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

SECTOR_SIZE = 512

# Linux filesystem partition type per label
LINUX_TYPE_DOS = "83"
LINUX_TYPE_GPT = "0FC63DAF-8483-4772-8E79-3D69D8477DE4"


class RunMode(Enum):
    """Whether changes are simulated or applied."""

    DRY_RUN = "dry_run"
    LIVE = "live"


class OutcomeKind(Enum):
    """Terminal outcome of a run."""

    SUCCESS = auto()
    INFO = auto()  # Benign early exit
    ERROR = auto()


class DiskFamily(Enum):
    """Supported disk naming conventions."""

    SCSI = "sd"  # /dev/sda + 2
    MMC = "mmcblk"  # /dev/mmcblk0 + p + 2

    @property
    def separator(self) -> str:
        return "p" if self is DiskFamily.MMC else ""


@dataclass(frozen=True)
class DiskGeometry:
    """Snapshot of a disk's size, taken once at the start of a run."""

    device: str
    total_sectors: int
    sector_size: int = SECTOR_SIZE

    def __post_init__(self) -> None:
        if self.total_sectors < 0:
            raise ValueError(f"total_sectors must be >= 0, got {self.total_sectors}")

    @property
    def size_bytes(self) -> int:
        return self.total_sectors * self.sector_size


@dataclass(frozen=True)
class PartitionExtent:
    """A contiguous run of sectors. ``end`` is exclusive."""

    start: int
    size: int
    type_code: str | None = None
    number: int | None = None

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"start must be >= 0, got {self.start}")
        if self.size <= 0:
            raise ValueError(f"size must be > 0, got {self.size}")

    @property
    def end(self) -> int:
        return self.start + self.size

    @property
    def last_sector(self) -> int:
        return self.end - 1

    def overlaps(self, other: PartitionExtent) -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "start": self.start,
            "size": self.size,
            "type": self.type_code,
        }


@dataclass(frozen=True)
class RootPartitionRef:
    """The partition backing the live root filesystem."""

    disk: str  # e.g. /dev/mmcblk0
    number: int
    family: DiskFamily
    extent: PartitionExtent | None = None

    @property
    def device(self) -> str:
        return self.partition_device(self.number)

    def partition_device(self, number: int) -> str:
        """Device path of partition ``number`` on the same disk."""
        return f"{self.disk}{self.family.separator}{number}"

    def with_extent(self, extent: PartitionExtent) -> RootPartitionRef:
        return RootPartitionRef(
            disk=self.disk,
            number=self.number,
            family=self.family,
            extent=extent,
        )


@dataclass(frozen=True)
class LayoutPlan:
    """New sector ranges for the grown root, the second root and data."""

    root: PartitionExtent
    second_root: PartitionExtent
    data: PartitionExtent

    def extents(self) -> list[PartitionExtent]:
        return [self.root, self.second_root, self.data]

    def validate(self, disk_end: int) -> None:
        """Raise ValueError unless the plan is contiguous, disjoint and in bounds."""
        extents = self.extents()
        for i, a in enumerate(extents):
            for b in extents[i + 1 :]:
                if a.overlaps(b):
                    raise ValueError(f"Extents overlap: {a} and {b}")
        if self.second_root.start != self.root.end:
            raise ValueError("Second root does not follow the resized root")
        if self.data.start != self.second_root.end:
            raise ValueError("Data partition does not follow the second root")
        if self.data.end > disk_end:
            raise ValueError(f"Data partition ends at {self.data.end}, past disk end {disk_end}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root.to_dict(),
            "second_root": self.second_root.to_dict(),
            "data": self.data.to_dict(),
        }


@dataclass
class PartitionLine:
    """One partition line of an sfdisk dump."""

    device: str
    start: int
    size: int
    type_code: str | None = None
    attrs: dict[str, str] = field(default_factory=dict)  # bootable, uuid, name, ...
    raw: str | None = None  # Original text, kept for untouched lines

    def render(self) -> str:
        if self.raw is not None:
            return self.raw
        fields = [f"start={self.start:>12}", f"size={self.size:>12}"]
        if self.type_code:
            fields.append(f"type={self.type_code}")
        for key, value in self.attrs.items():
            fields.append(key if value == "" else f"{key}={value}")
        return f"{self.device} : " + ", ".join(fields)

    def to_extent(self, number: int | None = None) -> PartitionExtent:
        return PartitionExtent(
            start=self.start,
            size=self.size,
            type_code=self.type_code,
            number=number,
        )


@dataclass
class PartitionTableDocument:
    """
    An sfdisk-style table description.

    Header lines (label, device, unit, ...) are kept verbatim; partition
    lines are parsed so they can be removed and appended.
    """

    header: list[str] = field(default_factory=list)
    lines: list[PartitionLine] = field(default_factory=list)

    def _header_value(self, key: str) -> str | None:
        prefix = f"{key}:"
        for line in self.header:
            if line.startswith(prefix):
                return line.split(":", 1)[1].strip()
        return None

    @property
    def label(self) -> str | None:
        return self._header_value("label")

    @property
    def last_lba(self) -> int | None:
        value = self._header_value("last-lba")
        return int(value) if value and value.isdigit() else None

    def get(self, device: str) -> PartitionLine | None:
        for line in self.lines:
            if line.device == device:
                return line
        return None

    def remove(self, device: str) -> PartitionLine:
        line = self.get(device)
        if line is None:
            raise KeyError(device)
        self.lines.remove(line)
        return line

    def append(self, line: PartitionLine) -> None:
        self.lines.append(line)

    def copy(self) -> PartitionTableDocument:
        return PartitionTableDocument(
            header=list(self.header),
            lines=[
                PartitionLine(
                    device=line.device,
                    start=line.start,
                    size=line.size,
                    type_code=line.type_code,
                    attrs=dict(line.attrs),
                    raw=line.raw,
                )
                for line in self.lines
            ],
        )

    def render(self) -> str:
        out = list(self.header)
        if out and out[-1] != "":
            out.append("")
        out.extend(line.render() for line in self.lines)
        return "\n".join(out) + "\n"
