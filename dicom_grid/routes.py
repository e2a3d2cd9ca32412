"""Route surface: ``/`` is the load screen, ``/grid/<layout>`` is the viewport grid."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

from .models import LAYOUTS, GridAssignment, LayoutConfig
from .state import ViewerSnapshot

__all__ = [
    "LoadScreenView",
    "GridView",
    "InvalidLayoutView",
    "NoSeriesView",
    "NotFoundView",
    "View",
    "resolve_route",
    "grid_path",
]

GRID_PREFIX = "/grid/"


@dataclass(frozen=True)
class LoadScreenView:
    loading: bool = False


@dataclass(frozen=True)
class GridView:
    layout: LayoutConfig
    assignment: GridAssignment


@dataclass(frozen=True)
class InvalidLayoutView:
    token: str

    @property
    def message(self) -> str:
        return f"Invalid layout {self.token!r}; choose one of {', '.join(LAYOUTS)}"


@dataclass(frozen=True)
class NoSeriesView:
    layout: LayoutConfig
    message: str = "Load DICOM files first"


@dataclass(frozen=True)
class NotFoundView:
    path: str


View = Union[LoadScreenView, GridView, InvalidLayoutView, NoSeriesView, NotFoundView]


def grid_path(layout: LayoutConfig) -> str:
    return f"{GRID_PREFIX}{layout.token}"


def resolve_route(
    path: str,
    snapshot: ViewerSnapshot,
    assign: Callable[[ViewerSnapshot, LayoutConfig], GridAssignment],
) -> View:
    """Map *path* to the view it should show for *snapshot*.

    Args:
        path: ``"/"`` or ``"/grid/<token>"``; a trailing slash is ignored.
        snapshot: Current viewer state.
        assign: Computes the grid assignment for a snapshot and layout.
    """
    path = path.strip() or "/"
    if path != "/":
        path = path.rstrip("/")

    if path == "/":
        return LoadScreenView(loading=snapshot.loading)

    if not path.startswith(GRID_PREFIX):
        return NotFoundView(path)

    token = path[len(GRID_PREFIX):]
    layout = LAYOUTS.get(token)
    if layout is None:
        return InvalidLayoutView(token)
    if not snapshot.series_groups:
        return NoSeriesView(layout)
    return GridView(layout, assign(snapshot, layout))
