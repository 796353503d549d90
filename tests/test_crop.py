"""Tests for diagram_extract.crop."""

from __future__ import annotations

import unittest
import tempfile
from pathlib import Path

from PIL import Image

from diagram_extract.crop import copy_full_raster, crop_region
from diagram_extract.geometry import PixelRect
from diagram_extract.utils import InvalidCropRegionError


class TestCropRegion(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.raster = self.tmp / "page.png"
        Image.new("RGB", (400, 300), color="white").save(self.raster)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_crop_with_padding(self) -> None:
        out = self.tmp / "out" / "d1.png"
        box = crop_region(self.raster, PixelRect(100, 100, 100, 50), out, padding_fraction=0.1)
        self.assertEqual(box, PixelRect(95, 95, 110, 60))
        with Image.open(out) as img:
            self.assertEqual(img.size, (110, 60))

    def test_crop_clamped_to_raster(self) -> None:
        out = self.tmp / "d2.png"
        box = crop_region(self.raster, PixelRect(350, 250, 100, 100), out, padding_fraction=0.0)
        self.assertEqual(box, PixelRect(350, 250, 50, 50))

    def test_degenerate_region_rejected(self) -> None:
        with self.assertRaises(InvalidCropRegionError):
            crop_region(self.raster, PixelRect(10, 10, 0, 20), self.tmp / "x.png")
        self.assertFalse((self.tmp / "x.png").exists())

    def test_region_outside_raster_rejected(self) -> None:
        with self.assertRaises(InvalidCropRegionError):
            crop_region(self.raster, PixelRect(500, 500, 20, 20), self.tmp / "y.png", padding_fraction=0.0)

    def test_copy_full_raster(self) -> None:
        out = self.tmp / "nested" / "full.png"
        copy_full_raster(self.raster, out)
        with Image.open(out) as img:
            self.assertEqual(img.size, (400, 300))


if __name__ == "__main__":
    unittest.main()
