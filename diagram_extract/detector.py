"""Hybrid diagram detection over a document's structural-analysis result.

Three passes run in priority order:

1. Layout-analysis figures (physical polygons, captions, confidence).
2. Page-level images from the layout analysis and, optionally, the PDF's own
   embedded image placements.
3. Vision-model segmentation of pages that passes 1-2 left uncovered, limited
   to the first ``max_vision_pages`` such pages in ascending order.

Passes 1 and 2 tolerate malformed input (zero candidates from that pass);
pass 3 isolates failures per page.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from .analysis_adapter import adapt_analysis
from .captions import (
    caption_from_paragraphs,
    figure_title,
    image_title,
    section_path_for_page,
    vision_title,
)
from .providers.image_extract import embedded_image_regions
from .quality import classify_detection
from .schema import (
    DIAGRAM_SOURCES,
    DetectionResult,
    DiagramCandidate,
    DiagramOptions,
    PhysicalPolygon,
    PixelBox,
    StructuralAnalysis,
    VisionPageResult,
)
from .utils import default_id_generator, get_page_count, is_pdf
from .vision_segmenter import VisionSegmenter

logger = logging.getLogger(__name__)

EmbeddedImageReader = Callable[..., dict[int, list[PhysicalPolygon]]]


class DetectionObserver:
    """Listener for per-page detection events. All methods are no-ops."""

    def on_page_processed(
        self,
        page_number: int,
        candidates: Sequence[DiagramCandidate],
        vision_result: VisionPageResult | None = None,
    ) -> None:
        pass


class HybridDiagramDetector:
    def __init__(
        self,
        options: DiagramOptions | None = None,
        segmenter: VisionSegmenter | None = None,
        id_generator: Callable[[], str] | None = None,
        observers: Iterable[DetectionObserver] = (),
        embedded_image_reader: EmbeddedImageReader = embedded_image_regions,
    ) -> None:
        self.options = options or DiagramOptions()
        self.segmenter = segmenter
        self.next_id = id_generator or default_id_generator
        self.observers = list(observers)
        self.embedded_image_reader = embedded_image_reader
        self._trace_level = logging.INFO if self.options.debug else logging.DEBUG

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def detect(self, analysis: StructuralAnalysis | dict[str, Any], document_path: str | Path) -> DetectionResult:
        """Return every diagram candidate for the document."""
        analysis = adapt_analysis(analysis)
        result = DetectionResult()
        covered: set[int] = set()

        figures = self._run_pass("structural_figure", self._figure_pass, analysis, covered)
        images = self._run_pass("structural_image", self._image_pass, analysis, covered, document_path)
        result.candidates.extend(figures)
        result.candidates.extend(images)

        for page_number in sorted(covered):
            self._notify(page_number, [c for c in result.candidates if c.page == page_number], None)

        vision_candidates, vision_results = self._vision_pass(analysis, document_path, covered)
        result.candidates.extend(vision_candidates)
        result.vision_pages = [r.page for r in vision_results]
        result.vision_failed_pages = [r.page for r in vision_results if r.error]

        for candidate in result.candidates:
            result.counts[candidate.source] += 1
        result.covered_pages = sorted({c.page for c in result.candidates})

        logger.info(
            "Total diagrams: %d (%s)",
            len(result.candidates),
            ", ".join(f"{result.counts[s]} {s}" for s in DIAGRAM_SOURCES),
        )
        return result

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------
    def _run_pass(self, name: str, fn: Callable[..., list[DiagramCandidate]], *args: Any) -> list[DiagramCandidate]:
        try:
            candidates = fn(*args)
        except Exception as exc:
            logger.warning("Pass '%s' failed on malformed input; no candidates from it: %s", name, exc)
            return []
        logger.info("Pass '%s' found %d candidate(s)", name, len(candidates))
        return candidates

    def _polygon(
        self, analysis: StructuralAnalysis, page_number: int, points: list[float]
    ) -> PhysicalPolygon | None:
        if not points:
            return None  # no geometry; the page is still covered
        page = analysis.page(page_number)
        return PhysicalPolygon(
            points=points,
            page_width=page.width if page else None,
            page_height=page.height if page else None,
            unit=page.unit if page else None,
        )

    def _figure_pass(self, analysis: StructuralAnalysis, covered: set[int]) -> list[DiagramCandidate]:
        candidates: list[DiagramCandidate] = []
        pass_pages: set[int] = set()
        for figure in analysis.figures:
            if not figure.regions:
                continue
            region = figure.regions[0]
            page_number = region.page_number or 1
            caption = figure.caption or caption_from_paragraphs(analysis.paragraphs, page_number)
            candidate = DiagramCandidate(
                id=self.next_id(),
                page=page_number,
                source="structural_figure",
                bounding_region=self._polygon(analysis, page_number, region.polygon),
                quality=classify_detection(figure.confidence, self.options.missing_confidence),
                confidence=figure.confidence,
                raw_caption_text=caption,
                title=figure_title(figure.id, caption, page_number),
                section_path=section_path_for_page(page_number),
            )
            candidates.append(candidate)
            pass_pages.add(page_number)
            logger.log(self._trace_level, "Structural figure %s (id=%s) on page %d%s",
                       candidate.id, figure.id, page_number,
                       f" caption={caption[:50]!r}" if caption else "")
        covered.update(pass_pages)
        return candidates

    def _image_pass(
        self, analysis: StructuralAnalysis, covered: set[int], document_path: str | Path
    ) -> list[DiagramCandidate]:
        candidates: list[DiagramCandidate] = []
        pass_pages: set[int] = set()
        for page in analysis.pages:
            for image in page.images:
                if not image.regions:
                    continue
                region = image.regions[0]
                page_number = region.page_number or page.page_number
                candidate = DiagramCandidate(
                    id=self.next_id(),
                    page=page_number,
                    source="structural_image",
                    bounding_region=self._polygon(analysis, page_number, region.polygon),
                    quality=classify_detection(image.confidence, self.options.missing_confidence),
                    confidence=image.confidence,
                    title=image_title(page_number),
                    section_path=section_path_for_page(page_number),
                )
                candidates.append(candidate)
                pass_pages.add(page_number)
                logger.log(self._trace_level, "Structural image %s on page %d", candidate.id, page_number)

        if self.options.embedded_images and is_pdf(document_path):
            candidates.extend(self._embedded_images(document_path, covered | pass_pages, pass_pages))

        covered.update(pass_pages)
        return candidates

    def _embedded_images(
        self, document_path: str | Path, skip_pages: set[int], pass_pages: set[int]
    ) -> list[DiagramCandidate]:
        try:
            page_count = get_page_count(document_path)
            pages = [p for p in range(1, page_count + 1) if p not in skip_pages]
            if not pages:
                return []
            found = self.embedded_image_reader(document_path, page_numbers=pages)
        except Exception as exc:
            logger.warning("Embedded-image feed failed; no candidates from it: %s", exc)
            return []

        candidates: list[DiagramCandidate] = []
        for page_number in sorted(found):
            for polygon in found[page_number]:
                candidate = DiagramCandidate(
                    id=self.next_id(),
                    page=page_number,
                    source="structural_image",
                    bounding_region=polygon,
                    quality=classify_detection(None, self.options.missing_confidence),
                    title=image_title(page_number),
                    section_path=section_path_for_page(page_number),
                )
                candidates.append(candidate)
                pass_pages.add(page_number)
                logger.log(self._trace_level, "Embedded image %s on page %d", candidate.id, page_number)
        return candidates

    def _all_pages(self, analysis: StructuralAnalysis, document_path: str | Path) -> list[int]:
        if analysis.pages:
            return sorted({p.page_number for p in analysis.pages})
        try:
            return list(range(1, get_page_count(document_path) + 1))
        except Exception as exc:
            logger.warning("Cannot determine page count for vision pass: %s", exc)
            return []

    def _vision_pass(
        self, analysis: StructuralAnalysis, document_path: str | Path, covered: set[int]
    ) -> tuple[list[DiagramCandidate], list[VisionPageResult]]:
        if not self.options.enable_vision_fallback:
            return [], []
        if self.segmenter is None or not self.segmenter.available():
            logger.info("Vision segmentation requested but no credential is configured; skipping")
            return [], []

        uncovered = [p for p in self._all_pages(analysis, document_path) if p not in covered]
        pages = uncovered[: self.options.max_vision_pages]
        if not pages:
            logger.log(self._trace_level, "No uncovered pages; skipping vision segmentation")
            return [], []
        logger.info("Vision segmentation scanning %d of %d uncovered page(s) (limit %d): %s",
                    len(pages), len(uncovered), self.options.max_vision_pages, pages)

        try:
            results = self.segmenter.detect_multi_page(document_path, pages)
        except Exception as exc:
            logger.warning("Vision segmentation failed unexpectedly; continuing without it: %s", exc)
            return [], []

        candidates: list[DiagramCandidate] = []
        for page_result in results:
            if page_result.error:
                logger.warning("Vision segmentation failed for page %d: %s",
                               page_result.page, page_result.error)
            page_candidates = [self._vision_candidate(page_result, region) for region in page_result.regions]
            candidates.extend(page_candidates)
            self._notify(page_result.page, page_candidates, page_result)
        logger.info("Pass 'vision_segment' found %d candidate(s)", len(candidates))
        return candidates, results

    def _vision_candidate(self, page_result: VisionPageResult, region) -> DiagramCandidate:
        page_number = page_result.page
        candidate = DiagramCandidate(
            id=self.next_id(),
            page=page_number,
            source="vision_segment",
            bounding_region=PixelBox(
                x=region.x,
                y=region.y,
                width=region.width,
                height=region.height,
                page_image_path=page_result.image_path,
                raster_width=page_result.raster_width or None,
                raster_height=page_result.raster_height or None,
            ),
            quality="ok",
            confidence=region.confidence,
            label=region.label,
            title=vision_title(region.label, page_number),
            section_path=section_path_for_page(page_number),
        )
        logger.log(self._trace_level, "Vision segment %s on page %d: %r at (%g, %g, %gx%g)",
                   candidate.id, page_number, region.label, region.x, region.y,
                   region.width, region.height)
        return candidate

    def _notify(self, page_number: int, candidates: list[DiagramCandidate],
                vision_result: VisionPageResult | None) -> None:
        for observer in self.observers:
            try:
                observer.on_page_processed(page_number, candidates, vision_result)
            except Exception as exc:
                logger.warning("Detection observer %s failed on page %d: %s",
                               type(observer).__name__, page_number, exc)
