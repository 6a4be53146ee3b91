"""
dualroot Platform Abstraction Layer.

Provides the capability backend through which disk and filesystem tools
are invoked.
"""

from __future__ import annotations

import platform

from dualroot.platform.base import CommandResult, PlatformBackend


def get_platform_backend() -> PlatformBackend:
    """Get the appropriate platform backend for the current OS."""
    system = platform.system().lower()

    if system == "linux":
        from dualroot.platform.linux import LinuxBackend

        return LinuxBackend()
    raise RuntimeError(f"Unsupported platform: {system}")


__all__ = [
    "CommandResult",
    "PlatformBackend",
    "get_platform_backend",
]
