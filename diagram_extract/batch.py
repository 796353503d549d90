"""Batch diagram extraction for a set of documents with layout analyses.

Each document is paired with ``<document>.analysis.json`` next to it (or the
path given after a colon, e.g. ``manual.pdf:layouts/manual.json``). Every
document gets its own output directory with a ``manifest.json``.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from .config import log_startup_config, options_from_env
from .pipeline import run_diagram_pipeline
from .utils import ExtractionError


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Batch extract diagrams from analyzed documents.")
    parser.add_argument("documents", nargs="+", help="DOCUMENT or DOCUMENT:ANALYSIS_JSON entries.")
    parser.add_argument("--out-root", required=True, help="One sub-directory per document is created here.")
    parser.add_argument("--enable-vision", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--max-vision-pages", type=int, default=None)
    return parser.parse_args(argv)


def _split(entry: str) -> tuple[Path, Path]:
    doc, sep, analysis = entry.partition(":")
    doc_path = Path(doc)
    if sep:
        return doc_path, Path(analysis)
    return doc_path, doc_path.with_name(doc_path.name + ".analysis.json")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    log_startup_config()

    updates = {}
    if args.enable_vision is not None:
        updates["enable_vision_fallback"] = args.enable_vision
    if args.max_vision_pages is not None:
        updates["max_vision_pages"] = args.max_vision_pages
    options = options_from_env().model_copy(update=updates)

    files = []
    for entry in args.documents:
        doc_path, analysis_path = _split(entry)
        out_dir = Path(args.out_root) / doc_path.stem
        try:
            analysis = json.loads(analysis_path.read_text(encoding="utf-8"))
            result = run_diagram_pipeline(doc_path, analysis, out_dir, options=options)
        except (OSError, json.JSONDecodeError, ExtractionError) as exc:
            files.append({"document": doc_path.name, "error": str(exc)})
            continue

        manifest = {
            "docId": result.doc_id,
            "sourcePdf": result.filename,
            "diagrams": [d.manifest_entry() for d in result.diagrams],
        }
        (out_dir / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        files.append(
            {
                "document": result.filename,
                "diagrams_total": result.diagrams_total,
                "extracted_total": result.extracted_total,
                "counts_by_source": result.counts_by_source,
                "pages_scanned_by_vision": result.pages_scanned_by_vision,
            }
        )

    summary = {
        "documents": len(files),
        "failed": sum(1 for f in files if "error" in f),
        "diagrams_total": sum(f.get("diagrams_total", 0) for f in files),
        "files": files,
    }
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
