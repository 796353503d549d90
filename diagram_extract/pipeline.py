"""End-to-end run: structural analysis + document -> cropped diagram assets."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

from .config import VISION_CALL_DELAY_SEC, VISION_MAX_CONCURRENCY, options_from_env
from .debug_artifacts import DebugArtifactWriter
from .detector import DetectionObserver, HybridDiagramDetector
from .extractor import DiagramExtractionPipeline
from .render import PageRasterCache
from .schema import DiagramAsset, DiagramOptions, DocumentDiagramsResult, PixelBox, StructuralAnalysis
from .utils import get_page_count, validate_document_path
from .vision_segmenter import VisionSegmenter

logger = logging.getLogger(__name__)


def _without_raster_paths(diagrams: list[DiagramAsset]) -> list[DiagramAsset]:
    """Blank ``page_image_path`` on pixel boxes whose raster was cleaned up."""
    cleared = []
    for asset in diagrams:
        region = asset.bounding_region
        if isinstance(region, PixelBox) and region.page_image_path:
            region = region.model_copy(update={"page_image_path": ""})
            asset = asset.model_copy(update={"bounding_region": region})
        cleared.append(asset)
    return cleared


def run_diagram_pipeline(
    document_path: str | Path,
    analysis: StructuralAnalysis | dict[str, Any],
    out_dir: str | Path,
    options: DiagramOptions | None = None,
    segmenter: VisionSegmenter | None = None,
    id_generator: Callable[[], str] | None = None,
) -> DocumentDiagramsResult:
    """
    Detect diagrams in a document and crop each one to
    ``<out_dir>/diagrams/images/<id>.png``.

    Only an unreadable document is fatal; every other failure degrades to
    fewer candidates or candidates without an image.
    """
    options = options or options_from_env()
    validated = validate_document_path(document_path)
    page_count = get_page_count(validated)
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    doc_id = str(uuid4())
    ingested_at = datetime.now(timezone.utc)
    logger.info("Diagram pipeline for %s (%d page(s)) -> %s", validated.name, page_count, out_dir)

    cache = PageRasterCache(out_dir / "temp" / "pages", default_scale=options.render_scale)
    if segmenter is None and options.enable_vision_fallback:
        segmenter = VisionSegmenter(
            cache,
            model=options.vision_model,
            call_delay=VISION_CALL_DELAY_SEC,
            max_concurrency=VISION_MAX_CONCURRENCY,
        )

    observers: list[DetectionObserver] = []
    if options.vision_debug:
        observers.append(DebugArtifactWriter(out_dir / "debug" / "vision"))

    detector = HybridDiagramDetector(
        options=options,
        segmenter=segmenter,
        id_generator=id_generator,
        observers=observers,
    )
    try:
        detection = detector.detect(analysis, validated)
        extractor = DiagramExtractionPipeline(
            cache, padding=options.crop_padding, workers=options.extract_workers
        )
        diagrams = extractor.extract(detection.candidates, validated, out_dir, source_pdf=validated.name)
    finally:
        if options.debug:
            logger.info("Debug mode: keeping page rasters under %s", cache.cache_dir)
        else:
            cache.cleanup()

    if not options.debug:
        diagrams = _without_raster_paths(diagrams)

    extracted_total = sum(1 for d in diagrams if d.image_path)
    logger.info("Diagram pipeline done: %d diagram(s), %d with image, %d page render(s)",
                len(diagrams), extracted_total, cache.render_count)
    return DocumentDiagramsResult(
        doc_id=doc_id,
        filename=validated.name,
        ingested_at=ingested_at,
        diagrams_total=len(diagrams),
        extracted_total=extracted_total,
        counts_by_source=dict(detection.counts),
        pages_scanned_by_vision=detection.vision_pages,
        diagrams=diagrams,
    )
