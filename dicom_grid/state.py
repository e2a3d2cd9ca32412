"""Viewer state machine.

The pair "current series list + current layout" is the only shared mutable
state in dicom_grid.  It lives in one immutable :class:`ViewerSnapshot` that is
swapped as a whole, so observers never see the two fields out of step.

Events:

* ``load_started``   – opens a new load generation and returns its number.
* ``load_succeeded`` – honored only for the latest generation.
* ``load_failed``    – honored only for the latest generation.
* ``load_cancelled`` – clears ``loading`` if the latest generation is abandoned.
* ``layout_changed`` – always honored; never touches the series list.

All transitions happen on the event loop thread, so no locking is required:
the latest generation wins and stale writers are no-ops.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import LoadErrors
from .models import LAYOUTS, LayoutConfig, SeriesGroup

__all__ = ["ViewerSnapshot", "ViewerState", "Listener"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewerSnapshot:
    series_groups: Tuple[SeriesGroup, ...] = ()
    layout: LayoutConfig = LAYOUTS["1x1"]
    loading: bool = False
    error: Optional[LoadErrors] = None
    generation: int = 0
    applied_generation: int = 0


Listener = Callable[[ViewerSnapshot], None]


class ViewerState:
    """Holds the current :class:`ViewerSnapshot` and applies load/layout events."""

    def __init__(self, layout: Optional[LayoutConfig] = None) -> None:
        self._snapshot = ViewerSnapshot(layout=layout or LAYOUTS["1x1"])
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> ViewerSnapshot:
        return self._snapshot

    @property
    def generation(self) -> int:
        return self._snapshot.generation

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* and return a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def is_current(self, generation: int) -> bool:
        return generation == self._snapshot.generation

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def load_started(self) -> int:
        generation = self._snapshot.generation + 1
        self._commit(replace(self._snapshot, generation=generation, loading=True))
        return generation

    def load_succeeded(self, generation: int, series_groups: Sequence[SeriesGroup]) -> bool:
        """Replace the series list wholesale if *generation* is still current."""
        if not self.is_current(generation):
            logger.info(
                "Dropping result of stale load generation %d (current is %d)",
                generation,
                self._snapshot.generation,
            )
            return False
        self._commit(
            replace(
                self._snapshot,
                series_groups=tuple(series_groups),
                loading=False,
                error=None,
                applied_generation=generation,
            )
        )
        return True

    def load_failed(self, generation: int, error: LoadErrors) -> bool:
        """Surface *error* while keeping the previous series list untouched."""
        if not self.is_current(generation):
            logger.info("Dropping failure of stale load generation %d", generation)
            return False
        self._commit(replace(self._snapshot, loading=False, error=error))
        return True

    def load_cancelled(self, generation: int) -> bool:
        """Clear the loading flag of an abandoned load; series and error stay."""
        if not self.is_current(generation):
            return False
        self._commit(replace(self._snapshot, loading=False))
        return True

    def layout_changed(self, layout: LayoutConfig) -> None:
        if layout == self._snapshot.layout:
            return
        self._commit(replace(self._snapshot, layout=layout))

    # ------------------------------------------------------------------

    def _commit(self, snapshot: ViewerSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)
