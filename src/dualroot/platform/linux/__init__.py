"""
dualroot Linux Platform Backend.

Implements the disk capabilities using standard Linux tools:
- findmnt, systemd-detect-virt for environment inspection
- parted -m, sfdisk --dump for geometry and table dumps
- sfdisk, partprobe for writing the table
- resize2fs, mkfs.ext4 for filesystems
- mount, umount, cp, diff for data migration
"""

from dualroot.platform.linux.backend import LinuxBackend
from dualroot.platform.linux.parsers import (
    parse_parted_machine,
    parse_sfdisk_dump,
)

__all__ = [
    "LinuxBackend",
    "parse_parted_machine",
    "parse_sfdisk_dump",
]
