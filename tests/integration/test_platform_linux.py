"""
Tests for dualroot.platform.linux module.

Uses mocking to test without requiring admin privileges or a real disk.
"""

import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from dualroot.core.errors import GeometryParseError, TableParseError
from dualroot.platform.base import CommandResult
from dualroot.platform.linux.backend import LinuxBackend
from dualroot.platform.linux.parsers import (
    parse_parted_machine,
    parse_partition_attrs,
    parse_sectors,
    parse_sfdisk_dump,
)

PARTED_OUTPUT = """BYT;
/dev/mmcblk0:31116288s:sd/mmc:512:512:msdos:SD SC32G:;
1:8192s:532479s:524288s:fat32::lba;
2:532480s:4530175s:3997696s:ext4::;
"""

SFDISK_DUMP = """label: dos
label-id: 0x5d3d2e3a
device: /dev/mmcblk0
unit: sectors
sector-size: 512

/dev/mmcblk0p1 : start=        8192, size=      524288, type=c, bootable
/dev/mmcblk0p2 : start=      532480, size=     3997696, type=83
"""

GPT_DUMP = """label: gpt
label-id: 8E2D5A1C-0F3B-4E8A-9C61-2B7D44A1E0F2
device: /dev/sda
unit: sectors
first-lba: 34
last-lba: 62333918
sector-size: 512

/dev/sda1 : start=        2048, size=     1048576, type=C12A7328-F81F-11D2-BA4B-00A0C93EC93B, uuid=1D7B0E3A-5E6F-4B8C-9A21-3C4D5E6F7A8B, name="EFI, boot"
/dev/sda2 : start=     1050624, size=     8388608, type=0FC63DAF-8483-4772-8E79-3D69D8477DE4, uuid=5A6B7C8D-9E0F-4A1B-8C2D-3E4F5A6B7C8D
"""


class TestLinuxParsers:
    """Tests for Linux output parsers."""

    def test_parse_parted_machine(self) -> None:
        geometry, partitions = parse_parted_machine(PARTED_OUTPUT)

        assert geometry.device == "/dev/mmcblk0"
        assert geometry.total_sectors == 31_116_288
        assert geometry.sector_size == 512
        assert [(p.number, p.start, p.size) for p in partitions] == [
            (1, 8192, 524_288),
            (2, 532_480, 3_997_696),
        ]
        assert partitions[1].type_code == "ext4"

    def test_parse_parted_without_partitions(self) -> None:
        with pytest.raises(GeometryParseError, match="No partitions"):
            parse_parted_machine("BYT;\n/dev/sda:1000s:scsi:512:512:msdos:Disk:;\n")

    def test_parse_parted_without_disk(self) -> None:
        with pytest.raises(GeometryParseError, match="No disk record"):
            parse_parted_machine("BYT;\n1:2048s:4095s:2048s:ext4::;\n")

    @pytest.mark.parametrize(
        "output",
        [
            "BYT;\n/dev/sda:1000s:scsi:512:512:msdos:Disk:;\n1:2048s:;\n",
            "BYT;\n/dev/sda:1000s:scsi:512:512:msdos:Disk:;\n1:2048s:2047s:0s:ext4::;\n",
            "BYT;\n/dev/sda:1000s:scsi:512:512:msdos:Disk:;\nError: unrecognised disk label\n",
            "",
        ],
    )
    def test_parse_parted_malformed(self, output: str) -> None:
        with pytest.raises(GeometryParseError):
            parse_parted_machine(output)

    def test_parse_sectors(self) -> None:
        assert parse_sectors("532480s", "start") == 532_480
        with pytest.raises(GeometryParseError):
            parse_sectors("260MB", "start")

    def test_parse_partition_attrs(self) -> None:
        attrs = parse_partition_attrs(' start=2048, size=4096, type=83, bootable, name="a, b"')

        assert attrs == {
            "start": "2048",
            "size": "4096",
            "type": "83",
            "bootable": "",
            "name": '"a, b"',
        }

    def test_parse_sfdisk_dump(self) -> None:
        document = parse_sfdisk_dump(SFDISK_DUMP)

        assert document.label == "dos"
        assert document.last_lba is None
        assert len(document.header) == 5
        boot, root = document.lines
        assert boot.device == "/dev/mmcblk0p1"
        assert boot.type_code == "c"
        assert boot.attrs == {"bootable": ""}
        assert root.start == 532_480
        assert root.size == 3_997_696

    def test_parse_sfdisk_dump_renders_verbatim(self) -> None:
        assert parse_sfdisk_dump(SFDISK_DUMP).render() == SFDISK_DUMP

    def test_parse_sfdisk_gpt(self) -> None:
        document = parse_sfdisk_dump(GPT_DUMP)

        assert document.label == "gpt"
        assert document.last_lba == 62_333_918
        efi = document.get("/dev/sda1")
        assert efi.attrs["name"] == '"EFI, boot"'
        assert efi.type_code == "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"

    @pytest.mark.parametrize(
        "output",
        [
            "label: dos\n\n/dev/sda1 : size=100, type=83\n",
            "label: dos\n\n/dev/sda1 : start=abc, size=100\n",
            "label: dos\n\n/dev/sda1 : start=2048, size=100\nunit: sectors\n",
            "device: /dev/sda\n\n/dev/sda1 : start=2048, size=100\n",
            "label: dos\nsomething odd\n",
        ],
    )
    def test_parse_sfdisk_malformed(self, output: str) -> None:
        with pytest.raises(TableParseError):
            parse_sfdisk_dump(output)


@pytest.mark.integration
class TestLinuxBackend:
    """Tests for LinuxBackend with mocked commands."""

    @pytest.fixture
    def backend(self) -> LinuxBackend:
        return LinuxBackend()

    def test_find_mount_source_findmnt(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "run_command") as mock_run:
            mock_run.return_value = CommandResult(0, "/dev/mmcblk0p2\n", "", ["findmnt"])

            assert backend.find_mount_source("/") == "/dev/mmcblk0p2"

        mock_run.assert_called_once_with(["findmnt", "-n", "-o", "SOURCE", "/"], check=False)

    def test_find_mount_source_btrfs_subvolume(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "run_command") as mock_run:
            mock_run.return_value = CommandResult(0, "/dev/sda2[/@]\n", "", ["findmnt"])

            assert backend.find_mount_source("/") == "/dev/sda2"

    def test_find_mount_source_psutil_fallback(self, backend: LinuxBackend) -> None:
        partitions = [
            Mock(device="/dev/root", mountpoint="/"),
            Mock(device="/dev/mmcblk0p1", mountpoint="/boot"),
            Mock(device="/dev/mmcblk0p2", mountpoint="/"),
        ]
        with patch.object(backend, "run_command") as mock_run, patch(
            "dualroot.platform.linux.backend.psutil.disk_partitions",
            return_value=partitions,
        ):
            mock_run.return_value = CommandResult(-1, "", "No such file", ["findmnt"])

            assert backend.find_mount_source("/") == "/dev/mmcblk0p2"

    def test_find_mount_source_not_mounted(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "run_command") as mock_run, patch(
            "dualroot.platform.linux.backend.psutil.disk_partitions",
            return_value=[],
        ):
            mock_run.return_value = CommandResult(1, "", "", ["findmnt"])

            assert backend.find_mount_source("/") is None

    def test_read_disk_geometry_command(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "run_command") as mock_run:
            backend.read_disk_geometry("/dev/sda")

        mock_run.assert_called_once_with(
            ["parted", "-m", "-s", "/dev/sda", "unit", "s", "print"], check=False
        )

    @pytest.mark.parametrize(
        "dry_run,flag",
        [(True, "--no-act"), (False, "--force")],
    )
    def test_apply_partition_table(
        self, backend: LinuxBackend, temp_dir: Path, dry_run: bool, flag: str
    ) -> None:
        table_file = temp_dir / "table.sfdisk"
        table_file.write_text(SFDISK_DUMP)

        with patch.object(backend, "run_command") as mock_run:
            backend.apply_partition_table("/dev/mmcblk0", table_file, dry_run=dry_run)

        command = mock_run.call_args.args[0]
        assert command == ["sfdisk", "--no-reread", "--no-tell-kernel", flag, "/dev/mmcblk0"]
        assert mock_run.call_args.kwargs["input_text"] == SFDISK_DUMP

    def test_make_filesystem(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "run_command") as mock_run:
            backend.make_filesystem("/dev/sda3", "ext4")

        assert mock_run.call_args.args[0] == ["mkfs.ext4", "-F", "/dev/sda3"]

    def test_make_filesystem_unsupported(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "run_command") as mock_run:
            result = backend.make_filesystem("/dev/sda3", "ntfs")

        assert result.success is False
        assert "Unsupported filesystem" in result.stderr
        mock_run.assert_not_called()

    def test_copy_tree_copies_contents(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "run_command") as mock_run:
            backend.copy_tree(Path("/data"), Path("/mnt/scratch"))

        assert mock_run.call_args.args[0] == ["cp", "-a", "/data/.", "/mnt/scratch/"]

    def test_compare_trees(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "run_command") as mock_run:
            backend.compare_trees(Path("/data.bak"), Path("/data"), exclude=["lost+found"])

        assert mock_run.call_args.args[0] == [
            "diff",
            "-r",
            "--no-dereference",
            "-x",
            "lost+found",
            "/data.bak",
            "/data",
        ]
        assert mock_run.call_args.kwargs["check"] is False

    def test_detect_container_systemd(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "_check_tool", return_value=True), patch.object(
            backend, "run_command"
        ) as mock_run:
            mock_run.return_value = CommandResult(0, "docker\n", "", ["systemd-detect-virt"])
            assert backend.detect_container() == "docker"

            # systemd-detect-virt exits 1 and prints "none" on bare metal
            mock_run.return_value = CommandResult(1, "none\n", "", ["systemd-detect-virt"])
            assert backend.detect_container() is None

    def test_detect_container_marker_files(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "_check_tool", return_value=False), patch(
            "dualroot.platform.linux.backend.os.path.exists",
            side_effect=lambda path: path == "/run/.containerenv",
        ):
            assert backend.detect_container() == "podman"

    def test_missing_tools(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "_check_tool", side_effect=lambda tool: tool != "partprobe"):
            assert backend.missing_tools(live=False) == []
            assert backend.missing_tools(live=True) == ["partprobe"]

    def test_live_tools_include_filesystem(self, backend: LinuxBackend) -> None:
        with patch.object(backend, "_check_tool", return_value=False):
            missing = backend.missing_tools(live=True, filesystem="ext3")

        assert "mkfs.ext3" in missing
        assert "resize2fs" in missing


@pytest.mark.integration
class TestRunCommand:
    """Tests for LinuxBackend.run_command with subprocess mocked."""

    def test_success(self) -> None:
        backend = LinuxBackend()
        completed = Mock(returncode=0, stdout="ok\n", stderr="")

        with patch("dualroot.platform.linux.backend.subprocess.run", return_value=completed) as mock_run:
            result = backend.run_command(["sfdisk", "--dump", "/dev/sda"], input_text="x")

        assert result.success
        assert result.stdout == "ok\n"
        assert result.argv == ["sfdisk", "--dump", "/dev/sda"]
        assert mock_run.call_args.kwargs["input"] == "x"

    def test_timeout(self) -> None:
        backend = LinuxBackend()

        with patch(
            "dualroot.platform.linux.backend.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["resize2fs"], 5),
        ):
            result = backend.run_command(["resize2fs", "/dev/sda2"], timeout=5)

        assert result.returncode == -1
        assert "timed out" in result.stderr

    def test_missing_binary(self) -> None:
        backend = LinuxBackend()

        with patch(
            "dualroot.platform.linux.backend.subprocess.run",
            side_effect=FileNotFoundError("No such file or directory: 'parted'"),
        ):
            result = backend.run_command(["parted", "-m"])

        assert result.success is False
        assert "parted" in result.stderr
