"""
Linux Platform Backend Implementation.

Implements the disk capabilities using standard Linux tools.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import time
from pathlib import Path

import psutil

from dualroot.core.logging import get_logger
from dualroot.platform.base import CommandResult, PlatformBackend

logger = get_logger(__name__)


class LinuxBackend(PlatformBackend):
    """Linux implementation of the disk capabilities."""

    # Tool paths (can be overridden for testing)
    SFDISK = "sfdisk"
    PARTED = "parted"
    PARTPROBE = "partprobe"
    FINDMNT = "findmnt"
    MOUNT = "mount"
    UMOUNT = "umount"
    CP = "cp"
    DIFF = "diff"
    DETECT_VIRT = "systemd-detect-virt"

    # Filesystem tools
    MKFS = {
        "ext4": "mkfs.ext4",
        "ext3": "mkfs.ext3",
        "ext2": "mkfs.ext2",
    }
    RESIZE2FS = "resize2fs"

    # Marker files left by container runtimes
    CONTAINER_MARKERS = {
        "/.dockerenv": "docker",
        "/run/.containerenv": "podman",
    }

    @property
    def name(self) -> str:
        return "linux"

    def is_admin(self) -> bool:
        return os.geteuid() == 0

    def _check_tool(self, tool: str) -> bool:
        """Check if a tool is available."""
        return shutil.which(tool) is not None

    def _get_required_tools(self, live: bool = False, filesystem: str = "ext4") -> list[str]:
        """Get list of required tools."""
        tools = [self.SFDISK, self.PARTED]
        if live:
            tools += [
                self.PARTPROBE,
                self.RESIZE2FS,
                self.MKFS.get(filesystem, f"mkfs.{filesystem}"),
                self.MOUNT,
                self.UMOUNT,
                self.CP,
                self.DIFF,
            ]
        return tools

    def missing_tools(self, live: bool = False, filesystem: str = "ext4") -> list[str]:
        required = self._get_required_tools(live, filesystem)
        return [tool for tool in required if not self._check_tool(tool)]

    def run_command(
        self,
        command: list[str],
        timeout: int = 300,
        check: bool = True,
        input_text: str | None = None,
    ) -> CommandResult:
        """
        Run a tool and capture its output.

        Never raises for tool failures: a missing binary or a timeout comes
        back as returncode -1 with the reason in stderr. With ``check`` a
        non-zero exit is also logged as a warning.
        """
        logger.debug("Running command", command=command, stdin=input_text is not None)
        started = time.monotonic()

        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
                input=input_text,
            )
        except subprocess.TimeoutExpired:
            returncode, stdout, stderr = -1, "", f"Command timed out after {timeout}s"
        except OSError as e:
            returncode, stdout, stderr = -1, "", str(e)
        else:
            returncode, stdout, stderr = completed.returncode, completed.stdout, completed.stderr

        result = CommandResult(
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            command=command,
            duration_seconds=time.monotonic() - started,
        )
        if check and not result.success:
            logger.warning(
                "Command failed",
                command=command,
                returncode=returncode,
                stderr=stderr[:500],
            )
        return result

    # ==================== Environment ====================

    def detect_container(self) -> str | None:
        """Detect container virtualization via systemd-detect-virt, else marker files."""
        if self._check_tool(self.DETECT_VIRT):
            result = self.run_command([self.DETECT_VIRT, "--container"], check=False)
            technology = result.stdout.strip()
            if result.success and technology and technology != "none":
                return technology
            return None

        for marker, technology in self.CONTAINER_MARKERS.items():
            if os.path.exists(marker):
                return technology
        return None

    # ==================== Inspection ====================

    def find_mount_source(self, mount_point: str) -> str | None:
        """Get the device mounted at a path, via findmnt with a psutil fallback."""
        result = self.run_command(
            [self.FINDMNT, "-n", "-o", "SOURCE", mount_point],
            check=False,
        )
        if result.success and result.stdout.strip():
            # btrfs subvolumes are reported as /dev/sda2[/@]
            return result.stdout.strip().splitlines()[0].split("[", 1)[0]

        source = None
        for part in psutil.disk_partitions(all=True):
            if part.mountpoint == mount_point:
                # Last entry wins when mounts are stacked
                source = part.device
        return source

    def read_disk_geometry(self, disk_path: str) -> CommandResult:
        return self.run_command(
            [self.PARTED, "-m", "-s", disk_path, "unit", "s", "print"],
            check=False,
        )

    def dump_partition_table(self, disk_path: str) -> CommandResult:
        return self.run_command([self.SFDISK, "--dump", disk_path], check=False)

    # ==================== Partition table ====================

    def apply_partition_table(
        self,
        disk_path: str,
        table_file: Path,
        dry_run: bool = True,
    ) -> CommandResult:
        """
        Apply a staged table with sfdisk.

        The kernel is never told about the change here: the root partition
        is in use, so the re-read happens separately via partprobe.
        """
        cmd = [self.SFDISK, "--no-reread", "--no-tell-kernel"]
        if dry_run:
            cmd.append("--no-act")
        else:
            cmd.append("--force")
        cmd.append(disk_path)

        logger.info("Applying partition table", disk=disk_path, table=str(table_file), dry_run=dry_run)
        return self.run_command(cmd, timeout=60, input_text=table_file.read_text())

    def reread_partition_table(self, disk_path: str) -> CommandResult:
        return self.run_command([self.PARTPROBE, disk_path], timeout=60)

    # ==================== Filesystems ====================

    def resize_filesystem(self, partition_path: str) -> CommandResult:
        return self.run_command([self.RESIZE2FS, partition_path], timeout=3600)

    def make_filesystem(self, partition_path: str, filesystem: str) -> CommandResult:
        mkfs_tool = self.MKFS.get(filesystem)
        if mkfs_tool is None:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Unsupported filesystem: {filesystem}",
                command=[f"mkfs.{filesystem}", partition_path],
            )
        return self.run_command([mkfs_tool, "-F", partition_path], timeout=600)

    def mount(self, source: str | Path, mount_point: Path | None = None) -> CommandResult:
        cmd = [self.MOUNT, str(source)]
        if mount_point is not None:
            cmd.append(str(mount_point))
        return self.run_command(cmd)

    def unmount(self, target: str | Path) -> CommandResult:
        return self.run_command([self.UMOUNT, str(target)])

    # ==================== Data ====================

    def copy_tree(self, source: Path, destination: Path) -> CommandResult:
        # "source/." copies the contents, including dotfiles, not the directory itself
        return self.run_command(
            [self.CP, "-a", f"{source}/.", f"{destination}/"],
            timeout=86400,
        )

    def compare_trees(
        self,
        left: Path,
        right: Path,
        exclude: list[str] | None = None,
    ) -> CommandResult:
        cmd = [self.DIFF, "-r", "--no-dereference"]
        for pattern in exclude or []:
            cmd.extend(["-x", pattern])
        cmd.extend([str(left), str(right)])
        return self.run_command(cmd, timeout=86400, check=False)
