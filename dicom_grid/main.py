"""CLI entrypoint for dicom_grid.

Usage examples:
    # Group every DICOM file under a folder and lay the series out 2x2
    python -m dicom_grid /path/to/study --layout 2x2

    # Same, and write the rendered grid to a PNG contact sheet
    python -m dicom_grid /path/to/study --layout 3x3 --out grid.png
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import List

from .app import default_app
from .config import load_settings
from .grid import OverflowPolicy
from .models import LAYOUTS
from .routes import GridView, InvalidLayoutView, NoSeriesView

logger = logging.getLogger("dicom_grid")


def _collect_files(root: Path) -> List[Path]:
    """Recursively collect every regular file inside *root*.

    DICOM files often carry no extension, so nothing is filtered here; the
    parser rejects whatever is not DICOM.
    """
    return sorted(p for p in root.rglob("*") if p.is_file() and not p.name.startswith("."))


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:  # noqa: D401
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Group DICOM files into series and lay them out on a viewport grid")
    parser.add_argument(
        "image_dir",
        type=Path,
        help="Directory containing DICOM files",
    )
    parser.add_argument(
        "--layout",
        default=None,
        help=f"Grid layout ({', '.join(LAYOUTS)}); defaults to config.toml.",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="If given, write the rendered grid as a PNG contact sheet.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.toml (defaults to package path).",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=None,
        help="Maximum files parsed concurrently.",
    )
    parser.add_argument(
        "--overflow",
        choices=[p.value for p in OverflowPolicy],
        default=None,
        help="What to do with series that do not fit the layout.",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:  # noqa: D401
    """Main async driver: loads, groups and lays out the series."""
    settings = load_settings(args.config)
    if args.max_concurrent is not None:
        settings = replace(settings, max_concurrent=args.max_concurrent)
    if args.overflow is not None:
        settings = replace(settings, overflow_policy=OverflowPolicy(args.overflow))
    logging.getLogger().setLevel(settings.log_level)

    all_files = _collect_files(args.image_dir)
    if not all_files:
        logger.error("No files found in %s", args.image_dir)
        return 1

    app = default_app(settings)
    started = await app.start()
    if not started.ok:
        logger.error("Cannot start viewer – %s", started.error)
        return 2

    logger.info("Found %d files. Grouping into series…", len(all_files))
    loaded = await app.load_files(all_files)
    if not loaded.ok:
        logger.error("%s", loaded.error)
        return 1

    report = loaded.value
    for error in report.errors:
        logger.warning("Skipped %s", error)

    token = args.layout or settings.default_layout.token
    navigated = await app.navigate(f"/grid/{token}")
    view = navigated.value
    if isinstance(view, (InvalidLayoutView, NoSeriesView)):
        logger.error(view.message)
        return 1
    if not isinstance(view, GridView):
        logger.error("Unexpected view %r", view)
        return 1

    for slot_id, group in enumerate(view.assignment.slots):
        row, col = view.layout.slot_position(slot_id)
        if group is None:
            logger.info("Slot %d (r%d c%d): empty", slot_id, row, col)
        else:
            logger.info(
                "Slot %d (r%d c%d): %s – %d image(s) [%s]",
                slot_id,
                row,
                col,
                group.label,
                len(group),
                group.series_instance_uid,
            )
    for group in view.assignment.hidden:
        logger.info("Not shown at %s: %s [%s]", view.layout.token, group.label, group.series_instance_uid)

    if args.out is not None:
        app.engine.save(args.out, view.layout)

    await app.shutdown()
    return 0


def main(argv: List[str] | None = None) -> int:  # noqa: D401
    """Sync wrapper around :pyfunc:`_run`."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
