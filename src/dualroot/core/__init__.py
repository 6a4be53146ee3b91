"""
dualroot Core - Repartitioning engine.

Contains root identification, geometry discovery, layout planning,
table mutation, data migration and the orchestration around them.
"""

from dualroot.core.config import DualRootConfig
from dualroot.core.logging import get_logger, setup_logging
from dualroot.core.models import LayoutPlan, PartitionExtent, RunMode
from dualroot.core.orchestrator import Orchestrator, RunResult
from dualroot.core.planner import plan_layout

__all__ = [
    "DualRootConfig",
    "LayoutPlan",
    "Orchestrator",
    "PartitionExtent",
    "RunMode",
    "RunResult",
    "get_logger",
    "plan_layout",
    "setup_logging",
]
