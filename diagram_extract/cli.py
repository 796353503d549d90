"""Command-line interface for diagram extraction."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import log_startup_config, options_from_env
from .pipeline import run_diagram_pipeline
from .utils import ExtractionError


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""

    parser = argparse.ArgumentParser(
        description="Detect diagrams in a document from its layout analysis and crop them to PNG files."
    )
    parser.add_argument("analysis_json", help="Path to the structural-analysis JSON for the document.")
    parser.add_argument("document", help="Path to the PDF (or page image) the analysis describes.")
    parser.add_argument(
        "--out-dir",
        required=True,
        metavar="DIR",
        help="Output directory. Images go into DIR/diagrams/images/.",
    )
    parser.add_argument(
        "--enable-vision",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run vision segmentation on pages without structural diagrams (needs OPENAI_API_KEY).",
    )
    parser.add_argument(
        "--max-vision-pages",
        type=int,
        default=None,
        metavar="N",
        help="Maximum pages sent to the vision model (default: MAX_VISION_PAGES or 20).",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose detection logging; keep page rasters.")
    parser.add_argument(
        "--vision-debug",
        action="store_true",
        help="Write page images, overlays and raw vision responses under DIR/debug/vision/.",
    )
    parser.add_argument("--render-scale", type=float, default=None, help="Page render scale (default: 2.0).")
    parser.add_argument(
        "--crop-padding",
        type=float,
        default=None,
        help="Padding around each crop as a fraction of the region's shorter side (default: 0.05).",
    )
    parser.add_argument("--workers", type=int, default=None, help="Pages cropped in parallel (default: 1).")
    parser.add_argument(
        "--embedded-images",
        action="store_true",
        help="Also treat images embedded in the PDF as diagram candidates.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        metavar="FILE",
        help="Write the result JSON to FILE instead of stdout.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    log_startup_config()

    updates: dict = {}
    if args.enable_vision is not None:
        updates["enable_vision_fallback"] = args.enable_vision
    if args.max_vision_pages is not None:
        updates["max_vision_pages"] = args.max_vision_pages
    if args.debug:
        updates["debug"] = True
    if args.vision_debug:
        updates["vision_debug"] = True
    if args.render_scale is not None:
        updates["render_scale"] = args.render_scale
    if args.crop_padding is not None:
        updates["crop_padding"] = args.crop_padding
    if args.workers is not None:
        updates["extract_workers"] = args.workers
    if args.embedded_images:
        updates["embedded_images"] = True

    try:
        options = options_from_env().model_copy(update=updates)
        try:
            with open(args.analysis_json, encoding="utf-8") as f:
                analysis = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ExtractionError(f"Cannot read analysis JSON {args.analysis_json}: {exc}") from exc

        result = run_diagram_pipeline(args.document, analysis, args.out_dir, options=options)
        payload = result.model_dump_json(indent=2)
        if args.output:
            Path(args.output).write_text(payload, encoding="utf-8")
            print(f"Result written to {args.output}", file=sys.stderr)
        else:
            print(payload)
        return 0
    except ExtractionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:  # pragma: no cover - safety net
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
