"""Tests for diagram_extract.batch."""

from __future__ import annotations

import json
from pathlib import Path

import fitz  # PyMuPDF

from diagram_extract.batch import _split, main


def _make_pdf(path: Path) -> Path:
    doc = fitz.open()
    doc.new_page(width=612, height=792)
    doc.save(str(path))
    doc.close()
    return path


def _analysis() -> dict:
    return {
        "pages": [{"pageNumber": 1, "width": 612, "height": 792, "unit": "point"}],
        "figures": [{"boundingRegions": [{"pageNumber": 1, "polygon": [72, 72, 300, 72, 300, 300, 72, 300]}]}],
    }


class TestSplit:
    def test_sidecar_analysis(self):
        assert _split("docs/manual.pdf") == (Path("docs/manual.pdf"), Path("docs/manual.pdf.analysis.json"))

    def test_explicit_analysis(self):
        assert _split("manual.pdf:layouts/m.json") == (Path("manual.pdf"), Path("layouts/m.json"))


class TestBatchMain:
    def test_writes_manifest_and_summary(self, tmp_path: Path, capsys):
        pdf = _make_pdf(tmp_path / "manual.pdf")
        (tmp_path / "manual.pdf.analysis.json").write_text(json.dumps(_analysis()))
        missing = tmp_path / "other.pdf"

        code = main([str(pdf), str(missing), "--out-root", str(tmp_path / "out"), "--no-enable-vision"])

        assert code == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["documents"] == 2
        assert summary["failed"] == 1
        assert summary["diagrams_total"] == 1

        manifest = json.loads((tmp_path / "out" / "manual" / "manifest.json").read_text())
        assert manifest["sourcePdf"] == "manual.pdf"
        entry = manifest["diagrams"][0]
        assert entry["source"] == "structural_figure"
        assert (tmp_path / "out" / "manual" / entry["imagePath"]).exists()
