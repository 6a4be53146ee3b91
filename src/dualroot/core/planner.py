"""
Partition layout planning.

Pure sector arithmetic: given the disk size and the current root extent,
compute the grown root, an equally sized second root right after it, and
a data partition taking everything that is left up to the end of the disk.
"""

from __future__ import annotations

from dualroot.core.errors import InsufficientSpace
from dualroot.core.models import LayoutPlan, PartitionExtent


def align_up(value: int, alignment: int) -> int:
    """Round ``value`` up to a multiple of ``alignment``."""
    if alignment <= 1:
        return value
    return -(-value // alignment) * alignment


def plan_layout(
    disk_total: int,
    root_start: int,
    root_size: int,
    alignment: int = 1,
    type_code: str | None = None,
    root_number: int | None = None,
) -> LayoutPlan:
    """
    Plan the new layout.

    The root size is doubled (then rounded up to ``alignment`` sectors,
    which with the default of 1 changes nothing). Two such partitions are
    carved starting at the old root's start; what is left becomes the data
    partition. Raises InsufficientSpace unless something is left.
    """
    if root_start < 0 or root_size <= 0 or disk_total < 0:
        raise ValueError(
            f"Invalid geometry: disk_total={disk_total}, "
            f"root_start={root_start}, root_size={root_size}"
        )

    new_root_size = align_up(root_size * 2, alignment)
    combined_growth = new_root_size * 2
    remaining = disk_total - root_start - combined_growth

    if remaining <= 0:
        raise InsufficientSpace(remaining)

    def number(offset: int) -> int | None:
        return root_number + offset if root_number is not None else None

    root = PartitionExtent(
        start=root_start,
        size=new_root_size,
        type_code=type_code,
        number=number(0),
    )
    second_root = PartitionExtent(
        start=root.end,
        size=new_root_size,
        type_code=type_code,
        number=number(1),
    )
    data = PartitionExtent(
        start=second_root.end,
        size=remaining,
        type_code=type_code,
        number=number(2),
    )

    plan = LayoutPlan(root=root, second_root=second_root, data=data)
    plan.validate(disk_total)
    return plan
