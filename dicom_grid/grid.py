"""Grid assignment: which series group is shown in which viewport slot."""
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence

from .models import GridAssignment, LayoutConfig, SeriesGroup

__all__ = ["OverflowPolicy", "compute_assignment"]


class OverflowPolicy(Enum):
    """What happens to series groups that do not fit the layout.

    ``HIDE`` keeps them out of view silently; ``WARN`` also attaches a notice to
    the assignment.  In both cases they stay in the series list and reappear
    when a larger layout is selected.
    """

    HIDE = "hide"
    WARN = "warn"


def compute_assignment(
    series_groups: Sequence[SeriesGroup],
    layout: LayoutConfig,
    policy: OverflowPolicy = OverflowPolicy.HIDE,
) -> GridAssignment:
    """Lay *series_groups* out over *layout* in row-major order.

    The result depends only on the arguments: calling it again with the same
    series list and layout gives an equal assignment, so switching layouts back
    and forth restores the previous mapping exactly.
    """
    capacity = layout.capacity
    visible = list(series_groups[:capacity])
    hidden = tuple(series_groups[capacity:])

    slots: List[Optional[SeriesGroup]] = visible + [None] * (capacity - len(visible))

    notice = None
    if hidden and policy is OverflowPolicy.WARN:
        notice = (
            f"{len(hidden)} series not shown in layout {layout.token}; "
            f"choose a larger layout to see them"
        )

    return GridAssignment(layout=layout, slots=tuple(slots), hidden=hidden, overflow_notice=notice)
