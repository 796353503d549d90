"""Vision-model segmentation of whole pages into diagram regions."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Sequence

from PIL import Image

from .config import VISION_CALL_DELAY_SEC, VISION_MAX_CONCURRENCY, VISION_MODEL
from .geometry import fraction_box_to_pixels, looks_fractional
from .providers import vision_client
from .render import PageRasterCache
from .schema import VisionDetectionResult, VisionPageResult, VisionRegion
from .utils import VisionCallError, VisionServiceUnavailable

logger = logging.getLogger(__name__)

DetectFn = Callable[..., tuple[list, Any]]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def validate_regions(
    items: Sequence[Any],
    raster_width: int = 0,
    raster_height: int = 0,
    min_confidence: float | None = None,
) -> list[VisionRegion]:
    """Keep only items with numeric ``x, y, width, height`` and positive extent.

    When every surviving item is a 0..1 box and the raster size is known,
    the boxes are scaled to pixels.
    """
    boxes: list[tuple[float, float, float, float, dict]] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        x, y = _number(item.get("x")), _number(item.get("y"))
        w, h = _number(item.get("width")), _number(item.get("height"))
        if x is None or y is None or w is None or h is None:
            logger.debug("Dropping vision region without numeric geometry: %s", item)
            continue
        if w <= 0 or h <= 0:
            logger.debug("Dropping vision region with non-positive size: %s", item)
            continue
        boxes.append((max(0.0, x), max(0.0, y), w, h, item))

    fractional = (
        bool(boxes)
        and raster_width > 1
        and raster_height > 1
        and all(looks_fractional(x, y, w, h) for x, y, w, h, _ in boxes)
    )
    if fractional:
        logger.info("Vision regions look normalized (0..1); scaling to %dx%d pixels",
                    raster_width, raster_height)

    regions: list[VisionRegion] = []
    for x, y, w, h, item in boxes:
        if fractional:
            x, y, w, h = fraction_box_to_pixels(x, y, w, h, raster_width, raster_height)
        confidence = _number(item.get("confidence"))
        if min_confidence is not None and confidence is not None and confidence < min_confidence:
            continue
        label = item.get("label")
        regions.append(
            VisionRegion(
                x=x,
                y=y,
                width=w,
                height=h,
                label=str(label).strip() if label else None,
                confidence=confidence,
            )
        )
    return regions


class VisionSegmenter:
    """Render pages through a :class:`PageRasterCache` and segment them with a VLM.

    In-flight vision calls are bounded by ``max_concurrency``; calls are
    spaced by ``call_delay`` seconds.
    """

    def __init__(
        self,
        raster_cache: PageRasterCache,
        model: str = VISION_MODEL,
        call_delay: float = VISION_CALL_DELAY_SEC,
        max_concurrency: int = VISION_MAX_CONCURRENCY,
        min_confidence: float | None = None,
        detect_fn: DetectFn | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.raster_cache = raster_cache
        self.model = model
        self.call_delay = call_delay
        self.max_concurrency = max(1, max_concurrency)
        self.min_confidence = min_confidence
        self._detect_fn = detect_fn or vision_client.detect_regions_in_image
        self._sleep = sleep
        self._slots = threading.BoundedSemaphore(self.max_concurrency)

    def available(self) -> bool:
        """True when a credential is configured for the vision service."""
        return vision_client.is_configured()

    def detect(self, page_image_path: str | Path) -> VisionDetectionResult:
        """Segment one page raster. Never raises; errors yield an empty result."""
        try:
            with Image.open(page_image_path) as img:
                raster_width, raster_height = img.size
        except Exception as exc:
            logger.warning("Cannot read page raster %s: %s", page_image_path, exc)
            return VisionDetectionResult(error=f"unreadable raster: {exc}")

        with self._slots:
            try:
                items, raw = self._detect_fn(page_image_path, model=self.model)
            except VisionServiceUnavailable as exc:
                logger.info("Vision service unavailable: %s", exc)
                return VisionDetectionResult(error=str(exc))
            except VisionCallError as exc:
                logger.warning("Vision call failed for %s: %s", Path(page_image_path).name, exc)
                return VisionDetectionResult(error=str(exc))
            except Exception as exc:
                logger.warning("Unexpected vision error for %s: %s",
                               Path(page_image_path).name, exc)
                return VisionDetectionResult(error=f"{type(exc).__name__}: {exc}")
            finally:
                if self.max_concurrency > 1 and self.call_delay > 0:
                    self._sleep(self.call_delay)

        regions = validate_regions(items or [], raster_width, raster_height, self.min_confidence)
        logger.info("Vision found %d region(s) on %s", len(regions), Path(page_image_path).name)
        return VisionDetectionResult(regions=regions, raw_response=raw)

    def detect_page(self, doc_path: str | Path, page_number: int) -> VisionPageResult:
        entry = self.raster_cache.render(doc_path, page_number)
        if entry is None:
            return VisionPageResult(page=page_number, error="page could not be rendered",
                                    model=self.model)
        result = self.detect(entry.path)
        return VisionPageResult(
            page=page_number,
            image_path=entry.path,
            raster_width=entry.width,
            raster_height=entry.height,
            regions=result.regions,
            raw_response=result.raw_response,
            error=result.error,
            model=self.model,
        )

    def _detect_page_safe(self, doc_path: str | Path, page_number: int) -> VisionPageResult:
        try:
            return self.detect_page(doc_path, page_number)
        except Exception as exc:
            logger.warning("Vision segmentation failed for page %d; continuing: %s",
                           page_number, exc)
            return VisionPageResult(page=page_number, error=f"{type(exc).__name__}: {exc}",
                                    model=self.model)

    def detect_multi_page(self, doc_path: str | Path, pages: Sequence[int]) -> list[VisionPageResult]:
        """Segment ``pages`` in order; output order matches ``pages``.

        A failing page yields an empty result with ``error`` set.
        """
        pages = list(pages)
        if self.max_concurrency <= 1:
            results: list[VisionPageResult] = []
            for index, page_number in enumerate(pages):
                if index and self.call_delay > 0:
                    self._sleep(self.call_delay)
                results.append(self._detect_page_safe(doc_path, page_number))
            return results

        with ThreadPoolExecutor(max_workers=self.max_concurrency) as executor:
            return list(executor.map(lambda p: self._detect_page_safe(doc_path, p), pages))
