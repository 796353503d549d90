"""End-to-end tests for diagram_extract.pipeline."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import fitz  # PyMuPDF
import pytest
from PIL import Image

from diagram_extract.pipeline import run_diagram_pipeline
from diagram_extract.schema import DiagramOptions
from diagram_extract.utils import PdfValidationError, SequentialIdGenerator

SKETCH = {"x": 100, "y": 200, "width": 300, "height": 150, "label": "sketch"}


def _make_pdf(tmp_dir: Path, pages: int = 2) -> Path:
    pdf_path = tmp_dir / "workbook.pdf"
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=612, height=792)
        page.insert_text((72, 100), f"Page {i + 1}", fontsize=12)
        page.draw_rect(fitz.Rect(100, 200, 400, 400), color=(0, 0, 1), width=2)
    doc.save(str(pdf_path))
    doc.close()
    return pdf_path


def _analysis() -> dict:
    return {
        "analyzeResult": {
            "apiVersion": "2024-11-30",
            "pages": [
                {"pageNumber": 1, "width": 8.5, "height": 11, "unit": "inch"},
                {"pageNumber": 2, "width": 8.5, "height": 11, "unit": "inch"},
            ],
            "figures": [
                {
                    "boundingRegions": [
                        {"pageNumber": 1, "polygon": [1.4, 2.8, 5.6, 2.8, 5.6, 5.6, 1.4, 5.6]}
                    ],
                    "confidence": 0.95,
                }
            ],
        }
    }


@pytest.fixture
def vision_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


class TestRunDiagramPipeline:
    def test_end_to_end_structural_plus_vision(self, tmp_path: Path, vision_key):
        pdf = _make_pdf(tmp_path)
        out_dir = tmp_path / "job"
        detect = MagicMock(return_value=([SKETCH], {"regions": [SKETCH]}))
        options = DiagramOptions(enable_vision_fallback=True, max_vision_pages=5)

        with patch("diagram_extract.providers.vision_client.detect_regions_in_image", detect):
            result = run_diagram_pipeline(pdf, _analysis(), out_dir, options=options,
                                          id_generator=SequentialIdGenerator())

        assert result.filename == "workbook.pdf"
        assert result.diagrams_total == 2
        assert result.extracted_total == 2
        assert result.pages_scanned_by_vision == [2]
        assert result.counts_by_source == {
            "structural_figure": 1, "structural_image": 0, "vision_segment": 1
        }
        figure, sketch = result.diagrams
        assert (figure.source, figure.page, figure.quality) == ("structural_figure", 1, "ok")
        assert (sketch.source, sketch.page, sketch.quality) == ("vision_segment", 2, "ok")
        assert sketch.label == "sketch"
        # the raster it was measured on is removed with the cache
        assert sketch.bounding_region.page_image_path == ""
        for asset in result.diagrams:
            assert asset.image_path
            assert (out_dir / asset.image_path).exists()
        with Image.open(out_dir / sketch.image_path) as img:
            # 300x150 region padded by floor(150 * 0.05) = 7 px per side
            assert img.size == (314, 164)
        detect.assert_called_once()

    def test_page_rasters_removed_unless_debug(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        run_diagram_pipeline(pdf, _analysis(), tmp_path / "a", options=DiagramOptions())
        assert not (tmp_path / "a" / "temp" / "pages").exists()

        run_diagram_pipeline(pdf, _analysis(), tmp_path / "b", options=DiagramOptions(debug=True))
        assert list((tmp_path / "b" / "temp" / "pages").rglob("page-001@*.png"))

    def test_debug_run_keeps_vision_raster_path(self, tmp_path: Path, vision_key):
        pdf = _make_pdf(tmp_path)
        detect = MagicMock(return_value=([SKETCH], {"regions": [SKETCH]}))
        options = DiagramOptions(enable_vision_fallback=True, debug=True)
        with patch("diagram_extract.providers.vision_client.detect_regions_in_image", detect):
            result = run_diagram_pipeline(pdf, _analysis(), tmp_path / "job", options=options)
        sketch = result.diagrams[-1]
        assert sketch.source == "vision_segment"
        assert sketch.bounding_region.page_image_path
        assert Path(sketch.bounding_region.page_image_path).exists()

    def test_vision_debug_artifacts(self, tmp_path: Path, vision_key):
        pdf = _make_pdf(tmp_path)
        out_dir = tmp_path / "job"
        detect = MagicMock(return_value=([SKETCH], {"regions": [SKETCH]}))
        options = DiagramOptions(enable_vision_fallback=True, vision_debug=True)
        with patch("diagram_extract.providers.vision_client.detect_regions_in_image", detect):
            run_diagram_pipeline(pdf, _analysis(), out_dir, options=options)
        vision_dir = out_dir / "debug" / "vision"
        assert (vision_dir / "pages" / "page-002.png").exists()
        assert (vision_dir / "pages" / "page-002_overlay.png").exists()
        assert (vision_dir / "segments" / "page-002_segments.json").exists()
        assert not (vision_dir / "pages" / "page-001.png").exists()

    def test_vision_without_credential_matches_disabled(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        pdf = _make_pdf(tmp_path)
        enabled = run_diagram_pipeline(pdf, _analysis(), tmp_path / "a",
                                       options=DiagramOptions(enable_vision_fallback=True))
        disabled = run_diagram_pipeline(pdf, _analysis(), tmp_path / "b",
                                        options=DiagramOptions(enable_vision_fallback=False))
        assert [(d.source, d.page) for d in enabled.diagrams] == [(d.source, d.page) for d in disabled.diagrams]
        assert enabled.pages_scanned_by_vision == []

    def test_malformed_analysis_is_not_fatal(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        result = run_diagram_pipeline(pdf, {"figures": 42, "pages": "??"}, tmp_path / "job",
                                      options=DiagramOptions())
        assert result.diagrams_total == 0
        assert result.diagrams == []

    def test_invalid_document_is_fatal(self, tmp_path: Path):
        with pytest.raises(PdfValidationError):
            run_diagram_pipeline(tmp_path / "missing.pdf", _analysis(), tmp_path / "job",
                                 options=DiagramOptions())

    def test_manifest_entries(self, tmp_path: Path):
        pdf = _make_pdf(tmp_path)
        result = run_diagram_pipeline(pdf, _analysis(), tmp_path / "job", options=DiagramOptions(),
                                      id_generator=SequentialIdGenerator("fig"))
        entry = result.diagrams[0].manifest_entry()
        assert entry["id"] == "fig_1"
        assert entry["imagePath"] == "diagrams/images/fig_1.png"
        assert entry["title"] == "Figure on page 1"
        assert entry["description"] is None
