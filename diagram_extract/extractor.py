"""Materialize diagram candidates as cropped PNG files.

Candidates are grouped by page so each page is rendered at most once per run,
however many candidates point at it. A failed render or crop leaves the
candidate in the output with an empty ``image_path``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Sequence

from .config import CROP_PADDING, EXTRACT_WORKERS
from .crop import copy_full_raster, crop_region
from .geometry import to_pixel_rect
from .render import PageRasterCache
from .schema import DiagramAsset, DiagramCandidate, PageRasterEntry

logger = logging.getLogger(__name__)


def images_dir_for(out_dir: str | Path) -> Path:
    return Path(out_dir) / "diagrams" / "images"


class DiagramExtractionPipeline:
    def __init__(
        self,
        raster_cache: PageRasterCache,
        padding: float = CROP_PADDING,
        workers: int = EXTRACT_WORKERS,
    ) -> None:
        self.raster_cache = raster_cache
        self.padding = padding
        self.workers = max(1, workers)

    def extract(
        self,
        candidates: Sequence[DiagramCandidate],
        document_path: str | Path,
        out_dir: str | Path,
        source_pdf: str | None = None,
    ) -> list[DiagramAsset]:
        """Crop every candidate to ``<out_dir>/diagrams/images/<id>.png``.

        Returns one asset per candidate, in input order.
        """
        source_pdf = source_pdf or Path(document_path).name
        if not candidates:
            logger.info("No diagrams to extract")
            return []

        out_dir = Path(out_dir)
        images_dir = images_dir_for(out_dir)
        images_dir.mkdir(parents=True, exist_ok=True)

        by_page: dict[int, list[DiagramCandidate]] = {}
        for candidate in candidates:
            by_page.setdefault(candidate.page, []).append(candidate)
        logger.info("Extracting %d diagram(s) from %d page(s)", len(candidates), len(by_page))

        n_workers = min(self.workers, len(by_page))
        if n_workers <= 1:
            for page_number, group in by_page.items():
                self._extract_page(page_number, group, document_path, out_dir, images_dir)
        else:
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                list(
                    executor.map(
                        lambda item: self._extract_page(item[0], item[1], document_path, out_dir, images_dir),
                        by_page.items(),
                    )
                )

        extracted = sum(1 for c in candidates if c.image_path)
        logger.info("Extracted %d/%d diagram image(s)", extracted, len(candidates))
        return [DiagramAsset.from_candidate(c, source_pdf) for c in candidates]

    def _extract_page(
        self,
        page_number: int,
        group: list[DiagramCandidate],
        document_path: str | Path,
        out_dir: Path,
        images_dir: Path,
    ) -> None:
        try:
            entry = self.raster_cache.render(document_path, page_number)
        except Exception as exc:
            logger.warning("Failed to render page %d; %d diagram(s) kept without image: %s",
                           page_number, len(group), exc)
            entry = None
        if entry is None:
            for candidate in group:
                candidate.image_path = ""
            return

        for candidate in group:
            candidate.image_path = self._extract_one(candidate, entry, out_dir, images_dir)

    def _extract_one(
        self,
        candidate: DiagramCandidate,
        entry: PageRasterEntry,
        out_dir: Path,
        images_dir: Path,
    ) -> str:
        image_path = images_dir / f"{candidate.id}.png"
        try:
            if candidate.bounding_region is None:
                logger.warning("No bounding region for %s; using the full page", candidate.id)
                copy_full_raster(entry.path, image_path)
            else:
                rect = to_pixel_rect(candidate.bounding_region, entry.width, entry.height)
                crop_region(entry.path, rect, image_path, self.padding)
        except Exception as exc:
            logger.warning("Failed to extract %s on page %d: %s", candidate.id, candidate.page, exc)
            return ""
        logger.debug("Extracted %s -> %s", candidate.id, image_path)
        return image_path.relative_to(out_dir).as_posix()
