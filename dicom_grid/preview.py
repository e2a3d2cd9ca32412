"""Headless rendering engine that draws each bound series into a contact sheet.

Each ``bind`` decodes the key (middle) slice of the series, scales it to 8-bit
and keeps a thumbnail for the slot.  :meth:`SnapshotEngine.compose` tiles the
thumbnails in grid order and labels each tile.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

from PIL import Image, ImageDraw

from .ingest import load_pixels
from .models import LayoutConfig, SeriesGroup

__all__ = ["SnapshotEngine"]

logger = logging.getLogger(__name__)

BACKGROUND = (13, 13, 13)
EMPTY_TILE = (26, 26, 26)
LABEL_COLOUR = (255, 255, 255)
GUTTER = 4


class SnapshotEngine:
    """Rendering engine that keeps one Pillow thumbnail per bound slot."""

    def __init__(self, tile_size: int = 256, *, fail_slots: Iterable[int] = ()) -> None:
        self.tile_size = tile_size
        self.fail_slots = set(fail_slots)
        self.tiles: Dict[int, Image.Image] = {}
        self.labels: Dict[int, str] = {}

    async def initialize(self) -> None:
        if self.tile_size < 16:
            raise ValueError(f"tile_size too small: {self.tile_size}")

    async def bind(self, slot_id: int, series: SeriesGroup) -> None:
        if slot_id in self.fail_slots:
            raise RuntimeError(f"viewport {slot_id} unavailable")
        tile = await asyncio.to_thread(self._render_tile, series)
        self.tiles[slot_id] = tile
        self.labels[slot_id] = f"{series.label} ({len(series)})"

    async def unbind(self, slot_id: int) -> None:
        self.tiles.pop(slot_id, None)
        self.labels.pop(slot_id, None)

    # ------------------------------------------------------------------

    def compose(self, layout: LayoutConfig) -> Image.Image:
        """Return one RGB image with a tile per slot of *layout*."""
        step = self.tile_size + GUTTER
        sheet = Image.new(
            "RGB",
            (layout.cols * step + GUTTER, layout.rows * step + GUTTER),
            BACKGROUND,
        )
        draw = ImageDraw.Draw(sheet)

        for slot_id in range(layout.capacity):
            row, col = layout.slot_position(slot_id)
            x, y = GUTTER + col * step, GUTTER + row * step
            tile: Optional[Image.Image] = self.tiles.get(slot_id)
            if tile is None:
                draw.rectangle([x, y, x + self.tile_size - 1, y + self.tile_size - 1], fill=EMPTY_TILE)
                continue
            offset_x = x + (self.tile_size - tile.width) // 2
            offset_y = y + (self.tile_size - tile.height) // 2
            sheet.paste(tile.convert("RGB"), (offset_x, offset_y))
            draw.text((x + 4, y + 4), self.labels.get(slot_id, ""), fill=LABEL_COLOUR)

        return sheet

    def save(self, path: Path, layout: LayoutConfig) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.compose(layout).save(path)
        logger.info("Contact sheet for layout %s written to %s", layout.token, path)
        return path

    def _render_tile(self, series: SeriesGroup) -> Image.Image:
        pixels = load_pixels(series.key_record)
        img = Image.fromarray(pixels)
        if img.mode not in ("L", "RGB"):
            img = img.convert("L")
        img.thumbnail((self.tile_size, self.tile_size))
        return img
