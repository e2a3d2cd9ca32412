"""Data model for dicom_grid: sources, image records, series groups and grid layouts."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

__all__ = [
    "MemoryFile",
    "FileSource",
    "ImageRecord",
    "SeriesGroup",
    "LayoutConfig",
    "LAYOUTS",
    "get_layout",
    "GridAssignment",
]


@dataclass(frozen=True)
class MemoryFile:
    """A file supplied as bytes (e.g. an upload) rather than a path on disk."""

    name: str
    data: bytes

    def __repr__(self) -> str:
        return f"MemoryFile(name={self.name!r}, size={len(self.data)})"


FileSource = Union[Path, MemoryFile]


@dataclass(frozen=True)
class ImageRecord:
    """Identity, ordering and pixel-reference fields of one parsed DICOM instance.

    The pixel payload itself is not held here; ``source`` together with
    ``transfer_syntax_uid``, ``rows`` and ``columns`` is enough for an engine to
    decode it later.
    """

    series_instance_uid: str
    study_instance_uid: str
    sop_instance_uid: str
    instance_number: Optional[int]
    slice_position: Optional[float]
    modality: str
    series_description: str
    series_number: Optional[int]
    rows: Optional[int]
    columns: Optional[int]
    transfer_syntax_uid: str
    source: FileSource
    file_index: int = 0

    @property
    def name(self) -> str:
        return self.source.name

    def sort_key(self) -> Tuple[bool, int, bool, float, int]:
        """Ascending instance number, then slice position, then input order.

        Records lacking a field sort after records that have it.
        """
        return (
            self.instance_number is None,
            self.instance_number if self.instance_number is not None else 0,
            self.slice_position is None,
            self.slice_position if self.slice_position is not None else 0.0,
            self.file_index,
        )


@dataclass(frozen=True)
class SeriesGroup:
    series_instance_uid: str
    label: str
    records: Tuple[ImageRecord, ...]

    def __len__(self) -> int:
        return len(self.records)

    @property
    def key_record(self) -> ImageRecord:
        """Middle record of the series, used for previews."""
        return self.records[len(self.records) // 2]


@dataclass(frozen=True)
class LayoutConfig:
    """A grid of ``rows`` x ``cols`` viewports, filled row by row."""

    rows: int
    cols: int

    @property
    def token(self) -> str:
        return f"{self.rows}x{self.cols}"

    @property
    def capacity(self) -> int:
        return self.rows * self.cols

    def slot_position(self, slot_id: int) -> Tuple[int, int]:
        """Return ``(row, col)`` of *slot_id* in row-major order."""
        if not 0 <= slot_id < self.capacity:
            raise ValueError(f"Slot {slot_id} outside layout {self.token}")
        return divmod(slot_id, self.cols)


LAYOUTS: Dict[str, LayoutConfig] = {
    layout.token: layout
    for layout in (
        LayoutConfig(1, 1),
        LayoutConfig(2, 2),
        LayoutConfig(3, 3),
        LayoutConfig(4, 3),
    )
}


def get_layout(token: str) -> LayoutConfig:
    """Look up one of the supported layouts by its ``"RxC"`` token.

    Raises:
        ValueError: If *token* is not one of :data:`LAYOUTS`.
    """
    try:
        return LAYOUTS[token]
    except KeyError:
        raise ValueError(
            f"Unsupported layout {token!r}; expected one of {', '.join(LAYOUTS)}"
        ) from None


@dataclass(frozen=True)
class GridAssignment:
    """Slot index -> series group (or ``None`` for an empty placeholder)."""

    layout: LayoutConfig
    slots: Tuple[Optional[SeriesGroup], ...]
    hidden: Tuple[SeriesGroup, ...] = ()
    overflow_notice: Optional[str] = None

    def __post_init__(self) -> None:
        if len(self.slots) != self.layout.capacity:
            raise ValueError(
                f"Assignment has {len(self.slots)} slots, layout {self.layout.token} "
                f"needs {self.layout.capacity}"
            )

    def __getitem__(self, slot_id: int) -> Optional[SeriesGroup]:
        return self.slots[slot_id]

    def __len__(self) -> int:
        return len(self.slots)

    @property
    def filled(self) -> int:
        return sum(1 for group in self.slots if group is not None)
