"""Package entrypoint.

Allows running the tool with:
    python -m dicom_grid <image_dir> [options]
"""
from __future__ import annotations

from .main import main

if __name__ == "__main__":
    raise SystemExit(main())
