"""Crop pixel regions out of page rasters with Pillow."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from PIL import Image

from .geometry import PixelRect, pad_and_clamp
from .utils import InvalidCropRegionError

logger = logging.getLogger(__name__)

DEFAULT_PADDING = 0.05


def crop_region(
    raster_path: str | Path,
    rect: PixelRect,
    output_path: str | Path,
    padding_fraction: float = DEFAULT_PADDING,
) -> PixelRect:
    """Write the padded, clamped ``rect`` of ``raster_path`` to ``output_path``.

    Returns the rectangle that was actually cropped. Raises
    :class:`InvalidCropRegionError` when ``rect`` (or what is left of it after
    clamping) has no area.
    """
    if rect.is_degenerate:
        raise InvalidCropRegionError(f"degenerate crop region {rect}")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with Image.open(raster_path) as img:
        box = pad_and_clamp(rect, padding_fraction, img.width, img.height)
        if box.is_degenerate:
            raise InvalidCropRegionError(
                f"crop region {rect} lies outside {img.width}x{img.height} raster"
            )
        img.crop(box.as_box()).save(output_path, format="PNG")

    logger.debug("Cropped %s -> %s", box, output_path)
    return box


def copy_full_raster(raster_path: str | Path, output_path: str | Path) -> None:
    """Use the whole page raster as the diagram image."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(raster_path, output_path)
