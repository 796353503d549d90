"""Tests for diagram_extract.extractor (DiagramExtractionPipeline)."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import fitz  # PyMuPDF
from PIL import Image

from diagram_extract.extractor import DiagramExtractionPipeline
from diagram_extract.render import PageRasterCache
from diagram_extract.schema import DiagramCandidate, PhysicalPolygon, PixelBox


def _make_pdf(tmp_dir: Path, pages: int = 2) -> Path:
    pdf_path = tmp_dir / "manual.pdf"
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=612, height=792)
        page.insert_text((72, 100), f"Page {i + 1}", fontsize=12)
    doc.save(str(pdf_path))
    doc.close()
    return pdf_path


def _inch_candidate(cid: str, page: int, x0: float, y0: float, x1: float, y1: float) -> DiagramCandidate:
    return DiagramCandidate(
        id=cid,
        page=page,
        source="structural_figure",
        bounding_region=PhysicalPolygon(
            points=[x0, y0, x1, y0, x1, y1, x0, y1], page_width=8.5, page_height=11, unit="inch"
        ),
    )


def _pipeline(tmp_path: Path, workers: int = 1) -> tuple[DiagramExtractionPipeline, PageRasterCache]:
    cache = PageRasterCache(tmp_path / "temp" / "pages", default_scale=1.0)
    return DiagramExtractionPipeline(cache, padding=0.05, workers=workers), cache


class TestExtract:
    def test_crops_candidate_to_png(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        pipeline, _ = _pipeline(tmp_path)
        out_dir = tmp_path / "out"
        assets = pipeline.extract([_inch_candidate("diagram_1", 1, 1, 1, 3, 2)], pdf, out_dir)

        assert len(assets) == 1
        asset = assets[0]
        assert asset.image_path == "diagrams/images/diagram_1.png"
        assert asset.source_pdf == "manual.pdf"
        with Image.open(out_dir / asset.image_path) as img:
            # 144x72 px at 72 dpi, padded by floor(72 * 0.05) = 3 px per side
            assert img.size == (150, 78)

    def test_page_rendered_once_for_many_candidates(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        pipeline, cache = _pipeline(tmp_path)
        candidates = [_inch_candidate(f"diagram_{i}", 1, 1, i, 3, i + 0.5) for i in range(1, 6)]
        assets = pipeline.extract(candidates, pdf, tmp_path / "out")
        assert cache.render_count == 1
        assert all(a.image_path for a in assets)

    def test_order_preserved_across_pages_with_workers(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        pipeline, cache = _pipeline(tmp_path, workers=2)
        candidates = [
            _inch_candidate("diagram_a", 2, 1, 1, 2, 2),
            _inch_candidate("diagram_b", 1, 1, 1, 2, 2),
            _inch_candidate("diagram_c", 2, 3, 3, 4, 4),
        ]
        assets = pipeline.extract(candidates, pdf, tmp_path / "out")
        assert [a.id for a in assets] == ["diagram_a", "diagram_b", "diagram_c"]
        assert cache.render_count == 2

    def test_degenerate_region_keeps_candidate_without_image(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        pipeline, _ = _pipeline(tmp_path)
        candidates = [
            _inch_candidate("diagram_1", 1, 2, 2, 2, 4),
            _inch_candidate("diagram_2", 1, 1, 1, 3, 2),
        ]
        assets = pipeline.extract(candidates, pdf, tmp_path / "out")
        assert assets[0].image_path == ""
        assert assets[1].image_path == "diagrams/images/diagram_2.png"
        assert not (tmp_path / "out" / "diagrams" / "images" / "diagram_1.png").exists()

    def test_missing_region_uses_full_page(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        pipeline, _ = _pipeline(tmp_path)
        candidate = DiagramCandidate(id="diagram_1", page=2, source="structural_image")
        asset = pipeline.extract([candidate], pdf, tmp_path / "out")[0]
        with Image.open(tmp_path / "out" / asset.image_path) as img:
            assert img.size == (612, 792)

    def test_out_of_range_page_does_not_abort(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        pipeline, _ = _pipeline(tmp_path)
        candidates = [
            _inch_candidate("diagram_1", 9, 1, 1, 3, 2),
            _inch_candidate("diagram_2", 1, 1, 1, 3, 2),
        ]
        assets = pipeline.extract(candidates, pdf, tmp_path / "out")
        assert [a.image_path for a in assets] == ["", "diagrams/images/diagram_2.png"]

    def test_unrenderable_page_keeps_candidates(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        pipeline, cache = _pipeline(tmp_path)
        with patch.object(cache, "render", return_value=None):
            assets = pipeline.extract([_inch_candidate("diagram_1", 1, 1, 1, 3, 2)], pdf, tmp_path / "out")
        assert len(assets) == 1
        assert assets[0].image_path == ""

    def test_pixel_box_from_larger_raster_is_rescaled(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        pipeline, _ = _pipeline(tmp_path)
        candidate = DiagramCandidate(
            id="diagram_1",
            page=1,
            source="vision_segment",
            bounding_region=PixelBox(x=200, y=200, width=400, height=200,
                                     raster_width=1224, raster_height=1584),
        )
        asset = pipeline.extract([candidate], pdf, tmp_path / "out")[0]
        with Image.open(tmp_path / "out" / asset.image_path) as img:
            # 200x100 on the 612x792 raster, padded by 5 px per side
            assert img.size == (210, 110)

    def test_no_candidates(self, tmp_path: Path):
        pipeline, cache = _pipeline(tmp_path)
        assert pipeline.extract([], tmp_path / "missing.pdf", tmp_path / "out") == []
        assert cache.render_count == 0
