"""
Pytest configuration and fixtures for dualroot tests.
"""

import sys
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dualroot.core.config import (  # noqa: E402
    DualRootConfig,
    LoggingConfig,
    MigrationConfig,
)
from dualroot.platform.base import CommandResult, PlatformBackend  # noqa: E402

BOOT_START = 8192


def make_parted_output(
    disk: str,
    total: int,
    partitions: list[tuple[int, int, int]],
) -> str:
    """Build ``parted -m unit s print`` output for (number, start, size) records."""
    lines = ["BYT;", f"{disk}:{total}s:sd/mmc:512:512:msdos:SD Card:;"]
    for number, start, size in partitions:
        fs = "fat32" if number == 1 else "ext4"
        lines.append(f"{number}:{start}s:{start + size - 1}s:{size}s:{fs}::;")
    return "\n".join(lines) + "\n"


def make_sfdisk_dump(
    disk: str,
    partitions: list[tuple[str, int, int, str]],
    label: str = "dos",
) -> str:
    """Build ``sfdisk --dump`` output for (device, start, size, type) records."""
    lines = [f"label: {label}", "label-id: 0x5d3d2e3a", f"device: {disk}", "unit: sectors"]
    if label == "gpt":
        lines.append("first-lba: 34")
        lines.append("last-lba: 999966")
    lines.append("sector-size: 512")
    lines.append("")
    for device, start, size, type_code in partitions:
        lines.append(f"{device} : start={start:>12}, size={size:>12}, type={type_code}")
    return "\n".join(lines) + "\n"


class FakeBackend(PlatformBackend):
    """
    In-memory disk for engine tests.

    Keeps the current partition table text, records every call and every
    mutation, and returns canned results for failures set in ``failures``.
    """

    def __init__(
        self,
        root_source: str | None = "/dev/mmcblk0p2",
        disk: str = "/dev/mmcblk0",
        separator: str = "p",
        total: int = 1_000_000,
        root_start: int = 100_000,
        root_size: int = 200_000,
        extra_partitions: int = 0,
        label: str = "dos",
        container: str | None = None,
        admin: bool = True,
    ) -> None:
        self.root_source = root_source
        self.disk = disk
        self.container = container
        self.admin = admin
        self.missing: list[str] = []
        self.calls: list[tuple] = []
        self.mutations: list[tuple] = []
        self.failures: dict[str, CommandResult] = {}
        self.compare_returncode = 0
        self.compare_output = ""
        self.applied_tables: list[tuple[str, bool]] = []

        boot = (1, BOOT_START, root_start - BOOT_START)
        parted = [boot, (2, root_start, root_size)]
        dump = [
            (f"{disk}{separator}1", BOOT_START, root_start - BOOT_START, "c" if label == "dos" else "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"),
            (f"{disk}{separator}2", root_start, root_size, "83" if label == "dos" else "0FC63DAF-8483-4772-8E79-3D69D8477DE4"),
        ]
        start = root_start + root_size
        for n in range(3, 3 + extra_partitions):
            parted.append((n, start, 1000))
            dump.append((f"{disk}{separator}{n}", start, 1000, "83"))
            start += 1000

        self.parted_output = make_parted_output(disk, total, parted)
        self.table_text = make_sfdisk_dump(disk, dump, label=label)

    # Helpers

    def _result(self, name: str, command: list[str], stdout: str = "") -> CommandResult:
        self.calls.append((name, *command))
        if name in self.failures:
            return self.failures[name]
        return CommandResult(0, stdout, "", command)

    @staticmethod
    def failure(returncode: int = 1, stderr: str = "boom") -> CommandResult:
        return CommandResult(returncode, "", stderr, ["fake"])

    # PlatformBackend

    @property
    def name(self) -> str:
        return "fake"

    def is_admin(self) -> bool:
        return self.admin

    def detect_container(self) -> str | None:
        self.calls.append(("detect_container",))
        return self.container

    def missing_tools(self, live: bool = False, filesystem: str = "ext4") -> list[str]:
        return list(self.missing)

    def find_mount_source(self, mount_point: str) -> str | None:
        self.calls.append(("find_mount_source", mount_point))
        return self.root_source

    def read_disk_geometry(self, disk_path: str) -> CommandResult:
        return self._result("read_disk_geometry", ["parted", disk_path], self.parted_output)

    def dump_partition_table(self, disk_path: str) -> CommandResult:
        return self._result("dump_partition_table", ["sfdisk", "--dump", disk_path], self.table_text)

    def apply_partition_table(self, disk_path: str, table_file: Path, dry_run: bool = True) -> CommandResult:
        content = table_file.read_text()
        self.applied_tables.append((content, dry_run))
        result = self._result("apply_partition_table", ["sfdisk", disk_path])
        if result.success and not dry_run:
            self.table_text = content
            self.mutations.append(("write_table", disk_path))
        return result

    def reread_partition_table(self, disk_path: str) -> CommandResult:
        return self._result("reread_partition_table", ["partprobe", disk_path])

    def resize_filesystem(self, partition_path: str) -> CommandResult:
        result = self._result("resize_filesystem", ["resize2fs", partition_path])
        if result.success:
            self.mutations.append(("resize", partition_path))
        return result

    def make_filesystem(self, partition_path: str, filesystem: str) -> CommandResult:
        result = self._result("make_filesystem", [f"mkfs.{filesystem}", partition_path])
        if result.success:
            self.mutations.append(("mkfs", partition_path))
        return result

    def mount(self, source: str | Path, mount_point: Path | None = None) -> CommandResult:
        result = self._result("mount", ["mount", str(source), str(mount_point)])
        if result.success:
            self.mutations.append(("mount", str(source), str(mount_point)))
        return result

    def unmount(self, target: str | Path) -> CommandResult:
        result = self._result("unmount", ["umount", str(target)])
        if result.success:
            self.mutations.append(("unmount", str(target)))
        return result

    def copy_tree(self, source: Path, destination: Path) -> CommandResult:
        result = self._result("copy_tree", ["cp", "-a", f"{source}/.", f"{destination}/"])
        if result.success:
            self.mutations.append(("copy", str(source), str(destination)))
        return result

    def compare_trees(self, left: Path, right: Path, exclude: list[str] | None = None) -> CommandResult:
        self.calls.append(("compare_trees", str(left), str(right), tuple(exclude or [])))
        return CommandResult(self.compare_returncode, self.compare_output, "", ["diff", "-r"])


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> DualRootConfig:
    """Configuration with every path inside a temporary directory."""
    data_dir = temp_dir / "data"
    data_dir.mkdir()
    (data_dir / "settings.json").write_text('{"hostname": "device-01"}')
    fstab = temp_dir / "fstab"
    fstab.write_text("proc /proc proc defaults 0 0\n")

    return DualRootConfig(
        logging=LoggingConfig(file_enabled=False, console_enabled=False, log_directory=temp_dir / "logs"),
        migration=MigrationConfig(
            data_directory=data_dir,
            scratch_mount_point=temp_dir / "mnt" / "scratch",
            fstab_path=fstab,
        ),
        report_directory=temp_dir / "reports",
    )


@pytest.fixture
def make_backend() -> Callable[..., FakeBackend]:
    """Factory for simulated disks."""
    return FakeBackend


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Simulated 1,000,000 sector SD card, root at 100,000 with 200,000 sectors."""
    return FakeBackend()


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
