"""Rendering-engine boundary: readiness gate and per-slot viewport binding.

The engine itself (pixel decoding, drawing) is an external collaborator that
only has to satisfy :class:`RenderingEngine`.  Engine exceptions stop here and
are turned into :class:`~dicom_grid.errors.RenderError` /
:class:`~dicom_grid.errors.InitError` values.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple

from .errors import Err, InitError, Ok, RenderError, Result
from .models import GridAssignment, SeriesGroup

__all__ = [
    "RenderingEngine",
    "EngineState",
    "EngineGate",
    "BindReport",
    "ViewportBindingController",
]

logger = logging.getLogger(__name__)


class RenderingEngine(Protocol):
    """What dicom_grid needs from a rendering engine."""

    async def initialize(self) -> None: ...

    async def bind(self, slot_id: int, series: SeriesGroup) -> None: ...

    async def unbind(self, slot_id: int) -> None: ...


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class EngineGate:
    """Tracks engine readiness: UNINITIALIZED -> INITIALIZING -> READY | FAILED.

    FAILED is terminal; there is no retry path.
    """

    def __init__(self, engine: RenderingEngine) -> None:
        self.engine = engine
        self.state = EngineState.UNINITIALIZED
        self.error: Optional[InitError] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def ready(self) -> bool:
        return self.state is EngineState.READY

    async def initialize(self) -> Result[None, InitError]:
        """Initialise the engine once; concurrent callers await the same attempt."""
        if self.state is EngineState.UNINITIALIZED:
            self.state = EngineState.INITIALIZING
            self._task = asyncio.create_task(self._run_initialize())
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.check_ready()

    def check_ready(self) -> Result[None, InitError]:
        if self.state is EngineState.READY:
            return Ok(None)
        if self.state is EngineState.FAILED and self.error is not None:
            return Err(self.error)
        return Err(InitError(f"rendering engine is {self.state.value}"))

    async def _run_initialize(self) -> None:
        try:
            await self.engine.initialize()
        except Exception as exc:  # noqa: BLE001 - any engine failure is fatal
            self.error = InitError(str(exc) or exc.__class__.__name__)
            self.state = EngineState.FAILED
            logger.error("Rendering engine failed to initialise: %s", self.error.reason)
            return
        self.state = EngineState.READY
        logger.info("Rendering engine ready")


@dataclass(frozen=True)
class BindReport:
    """What one :meth:`ViewportBindingController.apply` call did."""

    bound: Tuple[int, ...] = ()
    unbound: Tuple[int, ...] = ()
    unchanged: Tuple[int, ...] = ()
    errors: Dict[int, RenderError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class ViewportBindingController:
    """Keeps engine viewports in line with the current grid assignment.

    Only slots whose series group changed (by identity) are touched.  A bind or
    unbind failure leaves that slot empty and is reported; other slots are
    unaffected and the next :meth:`apply` retries the failed slot.
    """

    def __init__(self, engine: RenderingEngine, gate: EngineGate) -> None:
        self.engine = engine
        self.gate = gate
        self._bound: Dict[int, SeriesGroup] = {}
        self._lock = asyncio.Lock()

    @property
    def bound(self) -> Dict[int, SeriesGroup]:
        return dict(self._bound)

    async def apply(self, assignment: GridAssignment) -> Result[BindReport, InitError]:
        ready = self.gate.check_ready()
        if not ready.ok:
            return ready

        async with self._lock:
            bound, unbound, unchanged = [], [], []
            errors: Dict[int, RenderError] = {}

            # Slots beyond the new capacity
            for slot_id in sorted(s for s in self._bound if s >= len(assignment)):
                error = await self._unbind(slot_id)
                if error is None:
                    unbound.append(slot_id)
                else:
                    errors[slot_id] = error

            for slot_id, group in enumerate(assignment.slots):
                current = self._bound.get(slot_id)
                if current is group:
                    if group is not None:
                        unchanged.append(slot_id)
                    continue
                if current is not None:
                    error = await self._unbind(slot_id)
                    if error is not None:
                        errors[slot_id] = error
                        continue
                    unbound.append(slot_id)
                if group is None:
                    continue
                error = await self._bind(slot_id, group)
                if error is None:
                    bound.append(slot_id)
                else:
                    errors[slot_id] = error

        return Ok(BindReport(tuple(bound), tuple(unbound), tuple(unchanged), errors))

    async def release_all(self) -> Dict[int, RenderError]:
        """Unbind every slot; returns the slots whose engine unbind failed."""
        errors: Dict[int, RenderError] = {}
        async with self._lock:
            for slot_id in sorted(self._bound):
                error = await self._unbind(slot_id)
                if error is not None:
                    errors[slot_id] = error
        return errors

    async def _bind(self, slot_id: int, group: SeriesGroup) -> Optional[RenderError]:
        try:
            await self.engine.bind(slot_id, group)
        except Exception as exc:  # noqa: BLE001 - isolate per-slot engine failures
            error = RenderError(slot_id, str(exc) or exc.__class__.__name__)
            logger.error("Failed to bind series %s: %s", group.series_instance_uid, error)
            return error
        self._bound[slot_id] = group
        logger.debug("Bound slot %d to series %s", slot_id, group.series_instance_uid)
        return None

    async def _unbind(self, slot_id: int) -> Optional[RenderError]:
        # The slot is forgotten even if the engine fails to release it
        group = self._bound.pop(slot_id, None)
        try:
            await self.engine.unbind(slot_id)
        except Exception as exc:  # noqa: BLE001 - isolate per-slot engine failures
            error = RenderError(slot_id, str(exc) or exc.__class__.__name__)
            logger.error(
                "Failed to unbind series %s: %s",
                group.series_instance_uid if group is not None else "-",
                error,
            )
            return error
        logger.debug("Unbound slot %d", slot_id)
        return None
