"""
Tests for dualroot.core.models module.
"""

import pytest

from dualroot.core.errors import CommandFailed, ErrorCategory, InsufficientSpace
from dualroot.core.models import (
    DiskFamily,
    DiskGeometry,
    PartitionExtent,
    PartitionLine,
    PartitionTableDocument,
)


class TestPartitionExtent:
    """Tests for PartitionExtent."""

    def test_end_is_exclusive(self) -> None:
        extent = PartitionExtent(start=2048, size=1024)
        assert extent.end == 3072
        assert extent.last_sector == 3071

    def test_overlaps(self) -> None:
        a = PartitionExtent(0, 10)
        assert a.overlaps(PartitionExtent(9, 5))
        assert not a.overlaps(PartitionExtent(10, 5))

    @pytest.mark.parametrize("start,size", [(-1, 10), (0, 0), (5, -3)])
    def test_invalid(self, start: int, size: int) -> None:
        with pytest.raises(ValueError):
            PartitionExtent(start, size)


class TestDiskGeometry:
    def test_size_bytes(self) -> None:
        assert DiskGeometry("/dev/sda", 2048).size_bytes == 1024 * 1024


class TestDiskFamily:
    def test_separator(self) -> None:
        assert DiskFamily.MMC.separator == "p"
        assert DiskFamily.SCSI.separator == ""


class TestPartitionLine:
    def test_render_new_line(self) -> None:
        line = PartitionLine(device="/dev/sda3", start=2048, size=4096, type_code="83")
        assert line.render() == "/dev/sda3 : start=        2048, size=        4096, type=83"

    def test_render_keeps_raw(self) -> None:
        raw = "/dev/sda1 : start=2048, size=4096, type=c, bootable"
        line = PartitionLine(device="/dev/sda1", start=2048, size=4096, raw=raw)
        assert line.render() == raw


class TestPartitionTableDocument:
    """Tests for PartitionTableDocument."""

    @pytest.fixture
    def document(self) -> PartitionTableDocument:
        return PartitionTableDocument(
            header=["label: gpt", "last-lba: 999966"],
            lines=[PartitionLine("/dev/sda1", 2048, 100), PartitionLine("/dev/sda2", 2148, 100)],
        )

    def test_header_values(self, document: PartitionTableDocument) -> None:
        assert document.label == "gpt"
        assert document.last_lba == 999_966

    def test_remove(self, document: PartitionTableDocument) -> None:
        removed = document.remove("/dev/sda2")
        assert removed.start == 2148
        assert document.get("/dev/sda2") is None
        with pytest.raises(KeyError):
            document.remove("/dev/sda2")

    def test_copy_is_independent(self, document: PartitionTableDocument) -> None:
        copy = document.copy()
        copy.remove("/dev/sda1")
        assert len(document.lines) == 2

    def test_render(self, document: PartitionTableDocument) -> None:
        text = document.render()
        assert text.startswith("label: gpt\nlast-lba: 999966\n\n/dev/sda1 : ")
        assert text.endswith("\n")


class TestErrorCategories:
    def test_disk_modified_only_after_write(self) -> None:
        assert InsufficientSpace(-1).category is ErrorCategory.PLANNING
        assert InsufficientSpace(-1).disk_modified is False
        assert CommandFailed("x", ["x"], 1, "").disk_modified is True
