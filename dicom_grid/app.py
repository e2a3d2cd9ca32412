"""Application facade wiring loader, state, grid assignment, routes and engine.

Typical use::

    app = ViewerApp(SnapshotEngine())
    await app.start()
    await app.load_files(paths)
    await app.navigate("/grid/2x2")
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

from .config import Settings
from .engine import BindReport, EngineGate, RenderingEngine, ViewportBindingController
from .errors import InitError, LoadErrors, Ok, Result
from .grid import compute_assignment
from .loader import LoadCoordinator, LoadReport
from .models import FileSource, GridAssignment, LayoutConfig, get_layout
from .routes import GridView, View, resolve_route
from .state import ViewerSnapshot, ViewerState

__all__ = ["ViewerApp", "default_app"]

logger = logging.getLogger(__name__)


class ViewerApp:
    """Owns the viewer state and keeps the engine viewports in sync with it."""

    def __init__(self, engine: RenderingEngine, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        self.engine = engine
        self.gate = EngineGate(engine)
        self.state = ViewerState(self.settings.default_layout)
        self.loader = LoadCoordinator(self.state, max_concurrent=self.settings.max_concurrent)
        self.viewports = ViewportBindingController(engine, self.gate)
        self.last_bind_report: Optional[BindReport] = None

        self._assignment = self.assign(self.state.snapshot)
        self.state.subscribe(self._on_state_change)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> ViewerSnapshot:
        return self.state.snapshot

    @property
    def assignment(self) -> GridAssignment:
        return self._assignment

    def assign(self, snapshot: ViewerSnapshot, layout: Optional[LayoutConfig] = None) -> GridAssignment:
        return compute_assignment(
            snapshot.series_groups,
            layout or snapshot.layout,
            self.settings.overflow_policy,
        )

    def _on_state_change(self, snapshot: ViewerSnapshot) -> None:
        self._assignment = self.assign(snapshot)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start(self) -> Result[None, InitError]:
        """Initialise the rendering engine; nothing else works until this succeeds."""
        return await self.gate.initialize()

    async def load_files(
        self, files: Sequence[FileSource]
    ) -> Result[LoadReport, Union[LoadErrors, InitError]]:
        ready = self.gate.check_ready()
        if not ready.ok:
            return ready

        result = await self.loader.load_files(files)
        if result.ok and result.value.applied:
            await self.sync_viewports()
        return result

    async def change_layout(
        self, layout: Union[LayoutConfig, str]
    ) -> Result[GridAssignment, InitError]:
        """Switch the grid layout without re-parsing or re-grouping anything.

        Raises:
            ValueError: If *layout* is an unknown token.
        """
        ready = self.gate.check_ready()
        if not ready.ok:
            return ready

        if isinstance(layout, str):
            layout = get_layout(layout)
        self.state.layout_changed(layout)
        await self.sync_viewports()
        return Ok(self.assignment)

    async def navigate(self, path: str) -> Result[View, InitError]:
        """Resolve *path* to a view; grid routes also switch the active layout."""
        ready = self.gate.check_ready()
        if not ready.ok:
            return ready

        view = resolve_route(path, self.snapshot, self.assign)
        if isinstance(view, GridView):
            self.state.layout_changed(view.layout)
            await self.sync_viewports()
        return Ok(view)

    async def sync_viewports(self) -> Result[BindReport, InitError]:
        assignment = self.assignment
        if assignment.overflow_notice:
            logger.warning(assignment.overflow_notice)

        result = await self.viewports.apply(assignment)
        if not result.ok:
            return result

        report = result.value
        self.last_bind_report = report
        if report.errors:
            logger.error(
                "%d viewport(s) failed to bind in layout %s",
                len(report.errors),
                assignment.layout.token,
            )
        return Ok(report)

    async def shutdown(self) -> None:
        if self.gate.ready:
            errors = await self.viewports.release_all()
            if errors:
                logger.error("%d viewport(s) failed to release on shutdown", len(errors))

    def current_error(self) -> Optional[Union[LoadErrors, InitError]]:
        if self.gate.error is not None:
            return self.gate.error
        return self.snapshot.error


def default_app(settings: Settings, *, engine: Optional[RenderingEngine] = None) -> ViewerApp:
    """Build a :class:`ViewerApp` backed by the headless preview engine."""
    if engine is None:
        from .preview import SnapshotEngine

        engine = SnapshotEngine(settings.tile_size)
    return ViewerApp(engine, settings)
