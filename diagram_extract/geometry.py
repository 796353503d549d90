"""Coordinate normalization: any bounding region -> pixel rectangle on a raster.

Three coordinate spaces meet here:

* ``PhysicalPolygon`` with page dimensions - layout-analyzer units (inches or
  points) scaled by ``raster / page`` per axis, then bounded axis-aligned.
* ``PhysicalPolygon`` without page dimensions - degraded input; points are
  read as 0..1 fractions of the raster.
* ``PixelBox`` - already in pixels of a specific raster; used as-is, or
  rescaled when it was measured on a raster of different size.

Every result is clamped to ``[0, raster_width] x [0, raster_height]``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .schema import PhysicalPolygon, PixelBox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PixelRect:
    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    @property
    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_box(self) -> tuple[int, int, int, int]:
        """``(left, top, right, bottom)`` as Pillow's ``Image.crop`` expects."""
        return (self.left, self.top, self.right, self.bottom)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def bound_points(
    xs: list[float], ys: list[float], raster_width: int, raster_height: int
) -> PixelRect:
    """Axis-aligned bounds of the given pixel coordinates, clamped to the raster."""
    left = int(_clamp(math.floor(min(xs)), 0, raster_width))
    top = int(_clamp(math.floor(min(ys)), 0, raster_height))
    right = int(_clamp(math.ceil(max(xs)), 0, raster_width))
    bottom = int(_clamp(math.ceil(max(ys)), 0, raster_height))
    return PixelRect(left, top, max(0, right - left), max(0, bottom - top))


def to_pixel_rect(
    region: PhysicalPolygon | PixelBox,
    raster_width: int,
    raster_height: int,
    page_width: float | None = None,
    page_height: float | None = None,
) -> PixelRect:
    """Convert ``region`` into a clamped pixel rectangle on a raster.

    ``page_width``/``page_height`` fill in physical dimensions when the
    polygon itself does not carry them.
    """
    if raster_width <= 0 or raster_height <= 0:
        raise ValueError(f"invalid raster size {raster_width}x{raster_height}")

    if isinstance(region, PixelBox):
        sx = sy = 1.0
        if region.raster_width and region.raster_height:
            sx = raster_width / region.raster_width
            sy = raster_height / region.raster_height
        xs = [region.x * sx, (region.x + region.width) * sx]
        ys = [region.y * sy, (region.y + region.height) * sy]
        return bound_points(xs, ys, raster_width, raster_height)

    points = region.points
    phys_w = region.page_width or page_width
    phys_h = region.page_height or page_height
    if phys_w and phys_h:
        scale_x = raster_width / phys_w
        scale_y = raster_height / phys_h
    else:
        logger.warning(
            "No physical page dimensions for polygon; assuming normalized 0..1 coordinates"
        )
        scale_x, scale_y = float(raster_width), float(raster_height)

    xs = [x * scale_x for x in points[0::2]]
    ys = [y * scale_y for y in points[1::2]]
    return bound_points(xs, ys, raster_width, raster_height)


def pixel_rect_to_physical(
    rect: PixelRect,
    raster_width: int,
    raster_height: int,
    page_width: float,
    page_height: float,
) -> tuple[float, float, float, float]:
    """Inverse of the physical scaling: ``(x0, y0, x1, y1)`` in page units."""
    sx = page_width / raster_width
    sy = page_height / raster_height
    return (rect.left * sx, rect.top * sy, rect.right * sx, rect.bottom * sy)


def pad_and_clamp(
    rect: PixelRect, padding_fraction: float, raster_width: int, raster_height: int
) -> PixelRect:
    """Grow ``rect`` by ``padding_fraction * min(width, height)`` on each side,
    then clamp to the raster."""
    pad = int(math.floor(min(rect.width, rect.height) * max(0.0, padding_fraction)))
    left = int(_clamp(rect.left - pad, 0, raster_width))
    top = int(_clamp(rect.top - pad, 0, raster_height))
    right = int(_clamp(rect.right + pad, 0, raster_width))
    bottom = int(_clamp(rect.bottom + pad, 0, raster_height))
    return PixelRect(left, top, max(0, right - left), max(0, bottom - top))


def looks_fractional(x: float, y: float, width: float, height: float) -> bool:
    """True when every value of a box lies in 0..1 (a normalized box)."""
    if not all(0.0 <= v <= 1.0 for v in (x, y, width, height)):
        return False
    return x + width <= 1.0 + 1e-6 and y + height <= 1.0 + 1e-6


def fraction_box_to_pixels(
    x: float, y: float, width: float, height: float, raster_width: int, raster_height: int
) -> tuple[float, float, float, float]:
    """Scale a 0..1 box to pixels of a ``raster_width x raster_height`` raster."""
    return (
        round(x * raster_width, 2),
        round(y * raster_height, 2),
        round(width * raster_width, 2),
        round(height * raster_height, 2),
    )
