"""Ingest module for dicom_grid.

Turns one raw file into an :class:`~dicom_grid.models.ImageRecord`.  Nothing in
here raises past :func:`parse_file` / :func:`parse_bytes`: a file that cannot be
used comes back as an :class:`~dicom_grid.errors.Err` wrapping a
:class:`~dicom_grid.errors.LoadError`.
"""
from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pydicom
from pydicom.errors import InvalidDicomError

from .errors import Err, LoadError, Ok, Result
from .models import FileSource, ImageRecord

__all__ = ["DICOM_MAGIC", "parse_file", "parse_bytes", "read_source", "load_pixels"]

logger = logging.getLogger(__name__)

DICOM_PREAMBLE_LENGTH = 128
DICOM_MAGIC = b"DICM"


# --------------------------------------------------------------------------------------
# Public helpers
# --------------------------------------------------------------------------------------


async def read_source(source: FileSource) -> bytes:
    """Return the raw bytes of *source*.

    Paths are read in a worker thread so the event loop keeps serving other
    parses while the disk is busy.
    """
    if isinstance(source, Path):
        return await asyncio.to_thread(source.read_bytes)
    return source.data


async def parse_file(source: FileSource, index: int = 0) -> Result[ImageRecord, LoadError]:
    """Read and parse a single file.

    Args:
        source: Path or in-memory file.
        index: Position of *source* in the input batch; used as the final
            ordering tie-breaker inside a series.

    Returns:
        ``Ok(ImageRecord)`` or ``Err(LoadError)`` with kind ``ParseFailure``.
    """
    try:
        data = await read_source(source)
    except OSError as exc:
        return Err(LoadError(source, f"could not read file: {exc}"))
    return parse_bytes(data, source, index)


def parse_bytes(data: bytes, source: FileSource, index: int = 0) -> Result[ImageRecord, LoadError]:
    """Parse already-read bytes into an image record."""
    marker = data[DICOM_PREAMBLE_LENGTH : DICOM_PREAMBLE_LENGTH + len(DICOM_MAGIC)]
    if marker != DICOM_MAGIC:
        return Err(LoadError(source, "missing DICM marker; not a DICOM Part 10 file"))

    try:
        ds = pydicom.dcmread(io.BytesIO(data), stop_before_pixels=True)
        return _record_from_dataset(ds, source, index)
    except InvalidDicomError as exc:
        return Err(LoadError(source, f"invalid DICOM file: {exc}"))
    except Exception as exc:  # noqa: BLE001 - malformed headers raise many types
        return Err(LoadError(source, f"malformed DICOM header: {exc}"))


def load_pixels(record: ImageRecord) -> np.ndarray:
    """Decode the pixel data referenced by *record* as an 8-bit grayscale array.

    Raises:
        ValueError: If the file carries no decodable pixel data.
    """
    source = record.source
    raw = source.read_bytes() if isinstance(source, Path) else source.data
    ds = pydicom.dcmread(io.BytesIO(raw))
    if "PixelData" not in ds:
        raise ValueError(f"No pixel data in {record.name}")

    pixel_array = ds.pixel_array.astype(np.float32)
    if pixel_array.ndim == 3 and pixel_array.shape[-1] not in (3, 4):
        # Multi-frame: keep the first frame
        pixel_array = pixel_array[0]
    return _scale_to_uint8(pixel_array)


# --------------------------------------------------------------------------------------
# Internal helpers
# --------------------------------------------------------------------------------------


def _record_from_dataset(ds: pydicom.Dataset, source: FileSource, index: int) -> Result[ImageRecord, LoadError]:
    series_uid = _text(ds, "SeriesInstanceUID")
    if not series_uid:
        return Err(LoadError(source, "missing SeriesInstanceUID"))

    file_meta = getattr(ds, "file_meta", None)
    transfer_syntax = str(getattr(file_meta, "TransferSyntaxUID", "") or "")

    record = ImageRecord(
        series_instance_uid=series_uid,
        study_instance_uid=_text(ds, "StudyInstanceUID"),
        sop_instance_uid=_text(ds, "SOPInstanceUID"),
        instance_number=_int(ds, "InstanceNumber"),
        slice_position=_slice_position(ds),
        modality=_text(ds, "Modality"),
        series_description=_text(ds, "SeriesDescription"),
        series_number=_int(ds, "SeriesNumber"),
        rows=_int(ds, "Rows"),
        columns=_int(ds, "Columns"),
        transfer_syntax_uid=transfer_syntax,
        source=source,
        file_index=index,
    )
    return Ok(record)


def _text(ds: pydicom.Dataset, keyword: str) -> str:
    value = getattr(ds, keyword, None)
    if value is None:
        return ""
    return str(value).strip()


def _int(ds: pydicom.Dataset, keyword: str) -> Optional[int]:
    value: Any = getattr(ds, keyword, None)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-integer %s=%r", keyword, value)
        return None


def _slice_position(ds: pydicom.Dataset) -> Optional[float]:
    """Project ImagePositionPatient onto the slice normal.

    Falls back to SliceLocation when position or orientation is absent or
    malformed.
    """
    position = getattr(ds, "ImagePositionPatient", None)
    orientation = getattr(ds, "ImageOrientationPatient", None)
    if position is not None and orientation is not None:
        try:
            pos = np.array([float(x) for x in position])
            orient = [float(x) for x in orientation]
            normal = np.cross(np.array(orient[:3]), np.array(orient[3:6]))
            if pos.shape == (3,) and normal.shape == (3,):
                return float(np.dot(pos, normal))
        except (TypeError, ValueError):
            pass

    location = getattr(ds, "SliceLocation", None)
    if location is None or location == "":
        return None
    try:
        return float(location)
    except (TypeError, ValueError):
        return None


def _scale_to_uint8(array: np.ndarray) -> np.ndarray:
    """Scale any numeric array to uint8 range [0, 255]."""
    if array.dtype == np.uint8:
        return array

    array_min = float(array.min())
    array_max = float(array.max())
    if array_max == array_min:
        return np.zeros_like(array, dtype=np.uint8)

    scaled = (array - array_min) / (array_max - array_min) * 255.0
    return scaled.astype(np.uint8)
