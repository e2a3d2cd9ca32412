import io
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pydicom
import pytest
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, MRImageStorage, generate_uid

from dicom_grid.models import ImageRecord, MemoryFile, SeriesGroup

STUDY_UID = "1.2.826.0.1.3680043.10.1"
SERIES_UIDS = [f"1.2.826.0.1.3680043.10.1.{n}" for n in range(1, 13)]


def _make_dicom(
    series_uid: Optional[str] = SERIES_UIDS[0],
    instance_number: Optional[int] = 1,
    *,
    modality: str = "MR",
    description: str = "",
    position: Optional[float] = None,
    slice_location: Optional[float] = None,
    with_pixels: bool = False,
) -> bytes:
    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = MRImageStorage
    meta.MediaStorageSOPInstanceUID = generate_uid()
    meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = Dataset()
    ds.file_meta = meta
    ds.SOPClassUID = MRImageStorage
    ds.SOPInstanceUID = meta.MediaStorageSOPInstanceUID
    ds.StudyInstanceUID = STUDY_UID
    if series_uid is not None:
        ds.SeriesInstanceUID = series_uid
    ds.Modality = modality
    if description:
        ds.SeriesDescription = description
    if instance_number is not None:
        ds.InstanceNumber = instance_number
    if position is not None:
        ds.ImagePositionPatient = [0, 0, position]
        ds.ImageOrientationPatient = [1, 0, 0, 0, 1, 0]
    if slice_location is not None:
        ds.SliceLocation = slice_location
    if with_pixels:
        ds.Rows = 4
        ds.Columns = 4
        ds.SamplesPerPixel = 1
        ds.PhotometricInterpretation = "MONOCHROME2"
        ds.BitsAllocated = 16
        ds.BitsStored = 16
        ds.HighBit = 15
        ds.PixelRepresentation = 0
        ds.PixelData = (np.arange(16, dtype=np.uint16) * 100).tobytes()

    buf = io.BytesIO()
    pydicom.dcmwrite(buf, ds, enforce_file_format=True)
    return buf.getvalue()


@pytest.fixture
def make_dicom():
    """Factory returning the bytes of a minimal DICOM Part 10 file."""
    return _make_dicom


@pytest.fixture
def make_file():
    """Factory returning a :class:`MemoryFile` wrapping a synthetic DICOM file."""

    def _factory(name: str, *args, **kwargs) -> MemoryFile:
        return MemoryFile(name, _make_dicom(*args, **kwargs))

    return _factory


@pytest.fixture
def make_record():
    """Factory for image records that skips DICOM encoding entirely."""

    def _factory(series_uid: str, instance_number: Optional[int], index: int, position: Optional[float] = None):
        return ImageRecord(
            series_instance_uid=series_uid,
            study_instance_uid="ST1",
            sop_instance_uid=f"{series_uid}.{index}",
            instance_number=instance_number,
            slice_position=position,
            modality="CT",
            series_description="",
            series_number=None,
            rows=None,
            columns=None,
            transfer_syntax_uid="",
            source=MemoryFile(f"f{index}.dcm", b""),
            file_index=index,
        )

    return _factory


@pytest.fixture
def make_groups(make_record):
    """Factory for *n* single-record series groups named G0..G(n-1)."""

    def _factory(n: int) -> List[SeriesGroup]:
        return [
            SeriesGroup(f"G{i}", f"G{i}", (make_record(f"G{i}", 1, i),))
            for i in range(n)
        ]

    return _factory


class FakeEngine:
    """Records bind/unbind calls; can be told to fail initialisation, binds or unbinds."""

    def __init__(self, *, fail_init: bool = False, fail_slots=(), fail_unbind=()):
        self.fail_init = fail_init
        self.fail_slots = set(fail_slots)
        self.fail_unbind = set(fail_unbind)
        self.init_calls = 0
        self.calls: List[tuple] = []
        self.viewports: Dict[int, SeriesGroup] = {}

    async def initialize(self) -> None:
        self.init_calls += 1
        if self.fail_init:
            raise RuntimeError("GPU context lost")

    async def bind(self, slot_id: int, series: SeriesGroup) -> None:
        self.calls.append(("bind", slot_id, series.series_instance_uid))
        if slot_id in self.fail_slots:
            raise RuntimeError(f"cannot bind slot {slot_id}")
        self.viewports[slot_id] = series

    async def unbind(self, slot_id: int) -> None:
        self.calls.append(("unbind", slot_id))
        if slot_id in self.fail_unbind:
            raise RuntimeError("viewport gone")
        self.viewports.pop(slot_id, None)

    def reset_calls(self) -> None:
        self.calls.clear()


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def engine_factory():
    return FakeEngine


@pytest.fixture
def dicom_dir(tmp_path: Path) -> Path:
    """A folder with two series (3 + 2 slices, with pixels) and one junk file."""
    root = tmp_path / "study"
    root.mkdir()
    for n in range(1, 4):
        (root / f"ax_{n}.dcm").write_bytes(
            _make_dicom(SERIES_UIDS[0], n, description="T2 AX", with_pixels=True)
        )
    for n in range(1, 3):
        (root / f"sag_{n}").write_bytes(
            _make_dicom(SERIES_UIDS[1], n, description="T1 SAG", with_pixels=True)
        )
    (root / "notes.txt").write_text("not an image")
    return root


@pytest.fixture
def series_uids() -> List[str]:
    return list(SERIES_UIDS)
