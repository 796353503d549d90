"""Tests for diagram_extract.providers.image_extract module."""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image

from diagram_extract.providers.image_extract import embedded_image_regions


def _create_pdf_with_image(tmp_dir: Path, repeat_on_page_two: bool = False) -> Path:
    """Create a tiny PDF that has an embedded image on page 1."""
    pdf_path = tmp_dir / "test_with_image.pdf"
    doc = fitz.open()

    img_path = tmp_dir / "red.png"
    Image.new("RGB", (100, 100), color="red").save(str(img_path))

    page = doc.new_page(width=612, height=792)
    page.insert_text((72, 100), "Hello World", fontsize=12)
    page.insert_image(fitz.Rect(100, 200, 300, 400), filename=str(img_path))

    page2 = doc.new_page(width=612, height=792)
    page2.insert_text((72, 100), "Page two", fontsize=12)
    if repeat_on_page_two:
        # Reuse the same image object so both placements share one xref
        xref = page.get_images(full=True)[0][0]
        page2.insert_image(fitz.Rect(100, 200, 300, 400), xref=xref)

    # Page 3: an icon too small to be a diagram
    page3 = doc.new_page(width=612, height=792)
    icon_path = tmp_dir / "icon.png"
    Image.new("RGB", (10, 10), color="blue").save(str(icon_path))
    page3.insert_image(fitz.Rect(10, 10, 20, 20), filename=str(icon_path))

    doc.save(str(pdf_path))
    doc.close()
    return pdf_path


class TestEmbeddedImageRegions:
    def test_reports_placement_in_points(self, tmp_path: Path):
        pdf_path = _create_pdf_with_image(tmp_path)
        result = embedded_image_regions(pdf_path)

        assert len(result[1]) == 1
        polygon = result[1][0]
        assert polygon.unit == "point"
        assert (polygon.page_width, polygon.page_height) == (612, 792)
        xs, ys = polygon.points[0::2], polygon.points[1::2]
        assert min(xs) == 100 and max(xs) == 300
        assert min(ys) == 200 and max(ys) == 400

    def test_page_without_images_returns_empty(self, tmp_path: Path):
        pdf_path = _create_pdf_with_image(tmp_path)
        result = embedded_image_regions(pdf_path, page_numbers=[2])
        assert result == {2: []}

    def test_small_images_skipped(self, tmp_path: Path):
        pdf_path = _create_pdf_with_image(tmp_path)
        assert embedded_image_regions(pdf_path, page_numbers=[3]) == {3: []}

    def test_dedup_across_pages(self, tmp_path: Path):
        pdf_path = _create_pdf_with_image(tmp_path, repeat_on_page_two=True)
        result = embedded_image_regions(pdf_path)
        assert len(result[1]) == 1
        assert result[2] == []

    def test_min_area_filter(self, tmp_path: Path):
        pdf_path = _create_pdf_with_image(tmp_path)
        result = embedded_image_regions(pdf_path, page_numbers=[1], min_area=50_000)
        assert result == {1: []}
