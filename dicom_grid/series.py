"""Series grouping logic for dicom_grid."""
from __future__ import annotations

from typing import Dict, Iterable, List

from .models import ImageRecord, SeriesGroup

__all__ = ["group_records", "series_label"]


def series_label(records: List[ImageRecord], series_uid: str) -> str:
    """Human-readable label: modality plus series description.

    Falls back to the series UID when neither tag is present.
    """
    for record in records:
        parts = [p for p in (record.modality, record.series_description) if p]
        if parts:
            return " ".join(parts)
    return series_uid


def group_records(records: Iterable[ImageRecord]) -> List[SeriesGroup]:
    """Partition *records* into series groups.

    Args:
        records: Parsed image records in input-file order.

    Returns:
        One :class:`SeriesGroup` per ``SeriesInstanceUID``.

    Notes:
        Groups come out in the order their series UID is first seen in
        *records* (dicts keep insertion order), not alphabetically; that order
        decides grid slot placement later on.  Inside a group records are
        sorted by :meth:`ImageRecord.sort_key`, which ends in the input index so
        the sort is fully deterministic.
    """
    series_map: Dict[str, List[ImageRecord]] = {}
    for record in records:
        series_map.setdefault(record.series_instance_uid, []).append(record)

    groups: List[SeriesGroup] = []
    for series_uid, members in series_map.items():
        ordered = sorted(members, key=ImageRecord.sort_key)
        groups.append(
            SeriesGroup(
                series_instance_uid=series_uid,
                label=series_label(ordered, series_uid),
                records=tuple(ordered),
            )
        )
    return groups
