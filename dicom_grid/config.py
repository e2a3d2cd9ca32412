"""Settings for dicom_grid, read from ``config.toml``.

Lookup order for the file: explicit path argument, then the
``DICOM_GRID_CONFIG`` environment variable (a ``.env`` file at the project root
is honored, see :mod:`dicom_grid`), then the ``config.toml`` shipped next to
this module.  ``DICOM_GRID_LOG_LEVEL`` overrides ``[logging] level``.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import tomllib

from .grid import OverflowPolicy
from .loader import DEFAULT_MAX_CONCURRENT
from .models import LayoutConfig, get_layout

__all__ = ["Settings", "load_settings", "DEFAULT_CONFIG_PATH"]

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.toml"


@dataclass(frozen=True)
class Settings:
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    default_layout: LayoutConfig = get_layout("1x1")
    overflow_policy: OverflowPolicy = OverflowPolicy.HIDE
    tile_size: int = 256
    log_level: str = "INFO"


def load_settings(config_path: Path | None = None) -> Settings:
    """Build :class:`Settings` from a TOML file.

    A missing file yields defaults; a file that fails to parse is logged and
    also yields defaults.

    Raises:
        ValueError: If the file parses but holds an invalid value.
    """
    if config_path is None:
        env_path = os.getenv("DICOM_GRID_CONFIG")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

    config: Dict[str, Any]
    try:
        config = tomllib.loads(config_path.read_text()) if config_path.exists() else {}
    except (tomllib.TOMLDecodeError, OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to parse config file %s – %s", config_path, exc)
        config = {}

    loader_cfg = config.get("loader", {})
    grid_cfg = config.get("grid", {})
    preview_cfg = config.get("preview", {})
    logging_cfg = config.get("logging", {})

    max_concurrent = int(loader_cfg.get("max_concurrent", DEFAULT_MAX_CONCURRENT))
    if max_concurrent < 1:
        raise ValueError(f"loader.max_concurrent must be >= 1, got {max_concurrent}")

    tile_size = int(preview_cfg.get("tile_size", 256))
    if tile_size < 16:
        raise ValueError(f"preview.tile_size must be >= 16, got {tile_size}")

    try:
        policy = OverflowPolicy(str(grid_cfg.get("overflow_policy", "hide")).lower())
    except ValueError:
        raise ValueError(
            f"grid.overflow_policy must be one of {[p.value for p in OverflowPolicy]}"
        ) from None

    log_level = os.getenv("DICOM_GRID_LOG_LEVEL") or str(logging_cfg.get("level", "INFO"))

    return Settings(
        max_concurrent=max_concurrent,
        default_layout=get_layout(str(grid_cfg.get("default_layout", "1x1"))),
        overflow_policy=policy,
        tile_size=tile_size,
        log_level=log_level.upper(),
    )
