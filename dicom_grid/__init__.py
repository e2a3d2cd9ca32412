"""dicom_grid package init.

Loads environment variables from a local .env file (if present) so that
``DICOM_GRID_CONFIG`` and ``DICOM_GRID_LOG_LEVEL`` can be set per checkout.
"""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root if it exists
ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

from .app import ViewerApp  # noqa: E402
from .errors import ErrorKind, Err, Ok  # noqa: E402
from .grid import OverflowPolicy, compute_assignment  # noqa: E402
from .ingest import parse_file  # noqa: E402
from .loader import LoadCoordinator  # noqa: E402
from .models import LAYOUTS, GridAssignment, ImageRecord, LayoutConfig, MemoryFile, SeriesGroup  # noqa: E402
from .series import group_records  # noqa: E402

__all__ = [
    "ViewerApp",
    "ErrorKind",
    "Ok",
    "Err",
    "OverflowPolicy",
    "compute_assignment",
    "parse_file",
    "LoadCoordinator",
    "LAYOUTS",
    "GridAssignment",
    "ImageRecord",
    "LayoutConfig",
    "MemoryFile",
    "SeriesGroup",
    "group_records",
]
