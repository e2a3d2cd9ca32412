"""Load coordinator for dicom_grid.

This module is responsible for:
1. Opening a new load generation on the :class:`~dicom_grid.state.ViewerState`.
2. Parsing every file with bounded concurrency (an :class:`asyncio.Semaphore`).
3. Re-assembling per-file results in input order and grouping them into series.
4. Offering the outcome to the state machine, which only honors the latest
   generation.

A bad file never sinks the batch; only a batch in which *nothing* parses is
reported as ``EmptyResult``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .errors import Err, LoadError, LoadErrors, Ok, Result
from .ingest import parse_file
from .models import FileSource, ImageRecord, SeriesGroup
from .series import group_records
from .state import ViewerState

__all__ = ["LoadReport", "LoadCoordinator", "DEFAULT_MAX_CONCURRENT"]

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 8


@dataclass(frozen=True)
class LoadReport:
    """Outcome of one successful :meth:`LoadCoordinator.load_files` call.

    ``applied`` is False when a newer load started before this one finished;
    the series groups are then returned to the caller but never made visible.
    """

    generation: int
    series_groups: Tuple[SeriesGroup, ...]
    errors: Tuple[LoadError, ...]
    applied: bool = True

    @property
    def record_count(self) -> int:
        return sum(len(group) for group in self.series_groups)


class LoadCoordinator:
    """Runs one load generation per :meth:`load_files` call."""

    def __init__(self, state: ViewerState, *, max_concurrent: int = DEFAULT_MAX_CONCURRENT) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.state = state
        self.max_concurrent = max_concurrent

    async def load_files(self, files: Sequence[FileSource]) -> Result[LoadReport, LoadErrors]:
        """Parse and group *files*, then try to publish the result.

        Args:
            files: Paths or in-memory files, in the order the user supplied them.

        Returns:
            ``Ok(LoadReport)`` if at least one file parsed, otherwise
            ``Err(LoadErrors)`` of kind ``EmptyResult``.
        """
        files = list(files)
        generation = self.state.load_started()
        logger.info("Load generation %d started with %d file(s)", generation, len(files))

        try:
            records, errors = await self._parse_all(files)
        except asyncio.CancelledError:
            if self.state.load_cancelled(generation):
                logger.warning("Load generation %d cancelled", generation)
            raise
        for error in errors:
            logger.warning("Skipping %s", error)

        if not records:
            failure = LoadErrors(errors=tuple(errors), generation=generation)
            self.state.load_failed(generation, failure)
            logger.error("Load generation %d failed: %s", generation, failure)
            return Err(failure)

        groups = group_records(records)
        applied = self.state.load_succeeded(generation, groups)
        if applied:
            logger.info(
                "Load generation %d: %d series from %d file(s), %d error(s)",
                generation,
                len(groups),
                len(records),
                len(errors),
            )
        return Ok(
            LoadReport(
                generation=generation,
                series_groups=tuple(groups),
                errors=tuple(errors),
                applied=applied,
            )
        )

    async def _parse_all(self, files: List[FileSource]) -> Tuple[List[ImageRecord], List[LoadError]]:
        sem = asyncio.Semaphore(self.max_concurrent)

        async def _parse_one(index: int, source: FileSource):
            async with sem:
                return await parse_file(source, index)

        # gather() returns results in submission order, whatever order the reads finish in
        results = await asyncio.gather(*(_parse_one(i, f) for i, f in enumerate(files)))

        records: List[ImageRecord] = []
        errors: List[LoadError] = []
        for result in results:
            if result.ok:
                records.append(result.value)
            else:
                errors.append(result.error)
        return records, errors
