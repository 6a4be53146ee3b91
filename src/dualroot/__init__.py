"""
dualroot - Split a device's boot disk into two root partitions and a data partition.

Doubles the live root partition, adds an equally sized second root
partition behind it and moves the persistent data directory onto a new
partition covering the rest of the disk.
"""

__version__ = "1.0.0"
__author__ = "dualroot developers"

from dualroot.core.config import DualRootConfig
from dualroot.core.orchestrator import Orchestrator

__all__ = ["DualRootConfig", "Orchestrator", "__version__"]
