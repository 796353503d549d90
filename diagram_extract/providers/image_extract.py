"""Read embedded raster image placements from PDF pages using PyMuPDF.

This provider reports *where* images embedded in the PDF (JPEG, PNG, etc.)
are drawn on each page, as polygons in PDF points together with the page size
in points. It does not rasterise vector graphics.

Usage::

    from diagram_extract.providers.image_extract import embedded_image_regions

    regions = embedded_image_regions("/path/to.pdf", page_numbers=[1, 5, 11])
"""

from __future__ import annotations

import logging
from pathlib import Path

import fitz  # PyMuPDF

from ..schema import PhysicalPolygon

logger = logging.getLogger(__name__)

# Minimum image area in points² to keep (filters out tiny icons / artefacts)
MIN_IMAGE_AREA_PT2: float = 1_000.0

# Minimum pixel dimensions to keep
MIN_IMAGE_DIM_PX: int = 20


def _polygon_from_rect(rect: fitz.Rect, page_rect: fitz.Rect) -> PhysicalPolygon:
    return PhysicalPolygon(
        points=[
            round(rect.x0, 2), round(rect.y0, 2),
            round(rect.x1, 2), round(rect.y0, 2),
            round(rect.x1, 2), round(rect.y1, 2),
            round(rect.x0, 2), round(rect.y1, 2),
        ],
        page_width=round(page_rect.width, 2),
        page_height=round(page_rect.height, 2),
        unit="point",
    )


def embedded_image_regions(
    pdf_path: str | Path,
    page_numbers: list[int] | None = None,
    min_area: float = MIN_IMAGE_AREA_PT2,
) -> dict[int, list[PhysicalPolygon]]:
    """Return ``{page_number: [polygon, ...]}`` for embedded image placements.

    Parameters
    ----------
    pdf_path:
        Path to the PDF file.
    page_numbers:
        1-based page numbers to scan.  ``None`` means *all* pages.
    min_area:
        Minimum placement area (in pt²) to keep an image.

    Images reused on several pages (same xref) are reported once, on the
    first page where they appear.
    """
    result: dict[int, list[PhysicalPolygon]] = {}
    seen_xrefs: set[int] = set()  # cross-page dedup

    with fitz.open(str(pdf_path)) as doc:
        for page_idx, page in enumerate(doc):
            page_num = page_idx + 1
            if page_numbers is not None and page_num not in page_numbers:
                continue

            page_regions: list[PhysicalPolygon] = []
            for img_info in page.get_images(full=True):
                xref, width, height = img_info[0], img_info[2], img_info[3]
                if xref in seen_xrefs:
                    continue
                if width < MIN_IMAGE_DIM_PX or height < MIN_IMAGE_DIM_PX:
                    continue
                try:
                    rects = page.get_image_rects(xref)
                except Exception:
                    logger.debug("Failed to locate image xref=%d on page %d", xref, page_num)
                    continue
                if not rects:
                    continue
                rect = rects[0] & page.rect
                if rect.is_empty or rect.width * rect.height < min_area:
                    continue
                seen_xrefs.add(xref)
                page_regions.append(_polygon_from_rect(rect, page.rect))

            result[page_num] = page_regions

    return result
