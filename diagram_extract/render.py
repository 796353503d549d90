"""Render document pages to PNG rasters, at most once per (document, page, scale).

The cache is shared by the vision pass and the extraction pass of one run, so
a page the vision model looked at is not rendered a second time for cropping.
Concurrent requests for the same key serialize on a per-key lock.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image

from .config import RENDER_FALLBACK, RENDER_SCALE
from .schema import PageRasterEntry
from .utils import (
    PageOutOfRangeError,
    RenderFailure,
    document_key,
    get_page_count,
    is_pdf,
    pad_page_number,
)

logger = logging.getLogger(__name__)

_Key = tuple[str, int, float]


def _render_with_pymupdf(doc_path: Path, page_number: int, scale: float, out_path: Path) -> tuple[int, int]:
    with fitz.open(str(doc_path)) as doc:
        page = doc[page_number - 1]
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        pix.save(str(out_path), output="png")
        return pix.width, pix.height


def _render_with_pdf2image(doc_path: Path, page_number: int, scale: float, out_path: Path) -> tuple[int, int]:
    from pdf2image import convert_from_path

    images = convert_from_path(
        str(doc_path),
        dpi=max(36, int(round(72 * scale))),
        first_page=page_number,
        last_page=page_number,
    )
    if not images:
        raise RenderFailure(f"pdf2image returned no image for page {page_number}")
    image = images[0].convert("RGB")
    image.save(out_path, format="PNG")
    return image.width, image.height


def _convert_raster(doc_path: Path, out_path: Path) -> tuple[int, int]:
    with Image.open(doc_path) as img:
        image = img.convert("RGB")
    image.save(out_path, format="PNG")
    return image.width, image.height


class PageRasterCache:
    """Memoized page renderer writing ``page-NNN@<scale>.png`` under ``cache_dir``."""

    def __init__(
        self,
        cache_dir: str | Path,
        default_scale: float = RENDER_SCALE,
        fallback: bool = RENDER_FALLBACK,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.default_scale = default_scale
        self.fallback = fallback
        self.render_count = 0  # renders actually performed (cache misses)
        self._lock = threading.Lock()
        self._key_locks: dict[_Key, threading.Lock] = {}
        self._entries: dict[_Key, PageRasterEntry] = {}
        self._page_counts: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def raster_path(self, doc_path: str | Path, page_number: int, scale: float | None = None) -> Path:
        scale = self._scale(scale)
        return (
            self.cache_dir
            / document_key(doc_path)
            / f"page-{pad_page_number(page_number)}@{scale:.2f}.png"
        )

    def _scale(self, scale: float | None) -> float:
        # Keys, file names and render scale share the precision of the file name.
        return round(self.default_scale if scale is None else scale, 2)

    def page_count(self, doc_path: str | Path) -> int:
        resolved = str(Path(doc_path).expanduser().resolve())
        with self._lock:
            cached = self._page_counts.get(resolved)
        if cached is not None:
            return cached
        count = get_page_count(resolved)
        with self._lock:
            self._page_counts[resolved] = count
        return count

    def render(
        self, doc_path: str | Path, page_number: int, scale: float | None = None
    ) -> PageRasterEntry | None:
        """Return the raster for ``page_number``, rendering it on first request.

        Raises :class:`PageOutOfRangeError` for pages outside the document.
        Returns ``None`` when rendering fails, so the caller can skip the page.
        """
        scale = self._scale(scale)
        resolved = Path(doc_path).expanduser().resolve()
        key: _Key = (str(resolved), page_number, scale)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                return entry
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                entry = self._entries.get(key)
            if entry is not None:
                return entry

            page_count = self.page_count(resolved)
            if page_number < 1 or page_number > page_count:
                raise PageOutOfRangeError(page_number, page_count)

            out_path = self.raster_path(resolved, page_number, scale)
            if out_path.exists():
                with Image.open(out_path) as img:
                    width, height = img.size
                logger.debug("Page %d raster already on disk: %s", page_number, out_path)
            else:
                try:
                    width, height = self._render_to_file(resolved, page_number, scale, out_path)
                except RenderFailure as exc:
                    logger.warning("Page %d could not be rendered; skipping: %s", page_number, exc)
                    return None
                logger.info("Rendered page %d (%dx%d) -> %s", page_number, width, height, out_path)

            entry = PageRasterEntry(
                document_path=str(resolved),
                page_number=page_number,
                scale=scale,
                path=str(out_path),
                width=width,
                height=height,
            )
            with self._lock:
                self._entries[key] = entry
            return entry

    def cleanup(self) -> None:
        """Delete all cached rasters (call once the run no longer needs them)."""
        with self._lock:
            self._entries.clear()
        shutil.rmtree(self.cache_dir, ignore_errors=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _render_to_file(self, doc_path: Path, page_number: int, scale: float, out_path: Path) -> tuple[int, int]:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = out_path.with_name(out_path.name + ".part")
        with self._lock:
            self.render_count += 1
        try:
            if is_pdf(doc_path):
                size = self._render_pdf_page(doc_path, page_number, scale, tmp_path)
            else:
                try:
                    size = _convert_raster(doc_path, tmp_path)
                except Exception as exc:
                    raise RenderFailure(f"failed to read raster {doc_path.name}: {exc}") from exc
            os.replace(tmp_path, out_path)
            return size
        finally:
            tmp_path.unlink(missing_ok=True)

    def _render_pdf_page(self, doc_path: Path, page_number: int, scale: float, tmp_path: Path) -> tuple[int, int]:
        try:
            return _render_with_pymupdf(doc_path, page_number, scale, tmp_path)
        except Exception as exc:
            if not self.fallback:
                raise RenderFailure(f"PyMuPDF failed on page {page_number}: {exc}") from exc
            logger.warning("PyMuPDF failed on page %d (%s); trying pdf2image", page_number, exc)
        try:
            return _render_with_pdf2image(doc_path, page_number, scale, tmp_path)
        except Exception as exc:
            raise RenderFailure(f"pdf2image failed on page {page_number}: {exc}") from exc
