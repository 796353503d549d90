"""Map a raw layout-analysis payload into :class:`StructuralAnalysis`.

The layout service's JSON varies across API versions and document types:
polygons arrive either as flat ``[x0, y0, x1, y1, ...]`` lists or as
``[{"x": .., "y": ..}, ...]`` point lists, page-level ``images`` may be absent,
and the whole payload may be wrapped in ``analyzeResult``. All of that schema
drift is absorbed here; the detector only ever sees typed models.

Each section (pages, figures, paragraphs, styles) is read on its own. A
section with an unusable shape is logged and treated as empty, so a broken
``figures`` array never hides the pages that vision segmentation needs.
Within a section, a bad entry is skipped on its own, and a region whose
polygon is unusable keeps its page number with empty geometry.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import ValidationError

from .schema import (
    AnalyzedFigure,
    AnalyzedImage,
    AnalyzedPage,
    AnalyzedParagraph,
    AnalyzedRegion,
    StructuralAnalysis,
    TextSpan,
)
from .utils import MalformedDetectorOutput

logger = logging.getLogger(__name__)

SCHEMA_FLAT_POLYGON = "flat-polygon"
SCHEMA_POINT_POLYGON = "point-polygon"

# Problems confined to one entry of a section; the entry is skipped.
ENTRY_ERRORS = (MalformedDetectorOutput, ValidationError, TypeError, ValueError)


def _as_list(raw: dict, key: str) -> list:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedDetectorOutput(f"'{key}' is {type(value).__name__}, expected a list")
    return value


def _as_dict(item: Any, what: str) -> dict:
    if not isinstance(item, dict):
        raise MalformedDetectorOutput(f"{what} entry is {type(item).__name__}, expected an object")
    return item


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def read_polygon(raw: Any) -> tuple[list[float], str]:
    """Return ``(flat_points, schema_flavour)`` for either polygon encoding."""

    if not isinstance(raw, list) or not raw:
        raise MalformedDetectorOutput("polygon missing or empty")
    if all(_number(v) is not None for v in raw):
        if len(raw) % 2:
            raise MalformedDetectorOutput("flat polygon has an odd number of coordinates")
        return [float(v) for v in raw], SCHEMA_FLAT_POLYGON
    points: list[float] = []
    for point in raw:
        if not isinstance(point, dict):
            raise MalformedDetectorOutput("polygon point is not an object")
        x, y = _number(point.get("x")), _number(point.get("y"))
        if x is None or y is None:
            raise MalformedDetectorOutput("polygon point missing numeric x/y")
        points.extend((x, y))
    return points, SCHEMA_POINT_POLYGON


def _polygon_or_empty(raw: Any, page_number: int, flavours: set[str]) -> list[float]:
    try:
        polygon, flavour = read_polygon(raw)
    except MalformedDetectorOutput as exc:
        logger.warning("Region on page %d has no usable polygon (%s); keeping the page only",
                       page_number, exc)
        return []
    flavours.add(flavour)
    return polygon


def _read_regions(raw_regions: Any, default_page: int, flavours: set[str]) -> list[AnalyzedRegion]:
    """Regions whose polygon is unusable keep their page number with empty geometry."""
    if raw_regions is None:
        return []
    if not isinstance(raw_regions, list):
        raise MalformedDetectorOutput("boundingRegions is not a list")
    regions: list[AnalyzedRegion] = []
    for raw_region in raw_regions:
        region = _as_dict(raw_region, "boundingRegions")
        raw_page = region.get("pageNumber")
        page_number = int(raw_page) if _number(raw_page) is not None else default_page
        regions.append(
            AnalyzedRegion(
                page_number=page_number,
                polygon=_polygon_or_empty(region.get("polygon"), page_number, flavours),
            )
        )
    return regions


def _read_image(raw_image: Any, page_number: int, flavours: set[str]) -> AnalyzedImage:
    image = _as_dict(raw_image, "images")
    if "boundingRegions" in image:
        regions = _read_regions(image["boundingRegions"], page_number, flavours)
    elif "polygon" in image:
        regions = [
            AnalyzedRegion(
                page_number=page_number,
                polygon=_polygon_or_empty(image["polygon"], page_number, flavours),
            )
        ]
    else:
        regions = []
    return AnalyzedImage(regions=regions, confidence=_number(image.get("confidence")))


def _read_page(raw_page: Any, index: int, flavours: set[str]) -> AnalyzedPage:
    page = _as_dict(raw_page, "pages")
    page_number = int(page.get("pageNumber") or index)
    images: list[AnalyzedImage] = []
    raw_images = page.get("images")
    if isinstance(raw_images, list):
        for position, raw_image in enumerate(raw_images):
            try:
                images.append(_read_image(raw_image, page_number, flavours))
            except ENTRY_ERRORS as exc:
                logger.warning("Skipping image %d on page %d: %s", position, page_number, exc)
    elif raw_images is not None:
        logger.warning("Page %d 'images' has unexpected shape %s; ignoring",
                       page_number, type(raw_images).__name__)
    return AnalyzedPage(
        page_number=page_number,
        width=_number(page.get("width")),
        height=_number(page.get("height")),
        unit=page.get("unit"),
        images=images,
    )


def read_pages(raw: dict, flavours: set[str]) -> list[AnalyzedPage]:
    pages: list[AnalyzedPage] = []
    for index, raw_page in enumerate(_as_list(raw, "pages"), start=1):
        try:
            pages.append(_read_page(raw_page, index, flavours))
        except ENTRY_ERRORS as exc:
            logger.warning("Skipping pages[%d]: %s", index - 1, exc)
    return pages


def _read_figure(raw_figure: Any, flavours: set[str]) -> AnalyzedFigure:
    figure = _as_dict(raw_figure, "figures")
    caption = figure.get("caption")
    if isinstance(caption, dict):
        caption = caption.get("content")
    figure_id = figure.get("id")
    return AnalyzedFigure(
        id=str(figure_id) if figure_id is not None else None,
        regions=_read_regions(figure.get("boundingRegions"), 1, flavours),
        caption=caption.strip() if isinstance(caption, str) and caption.strip() else None,
        confidence=_number(figure.get("confidence")),
    )


def read_figures(raw: dict, flavours: set[str]) -> list[AnalyzedFigure]:
    figures: list[AnalyzedFigure] = []
    for index, raw_figure in enumerate(_as_list(raw, "figures")):
        try:
            figures.append(_read_figure(raw_figure, flavours))
        except ENTRY_ERRORS as exc:
            logger.warning("Skipping figures[%d]: %s", index, exc)
    return figures


def _read_spans(raw_spans: Any) -> list[TextSpan]:
    if not isinstance(raw_spans, list):
        return []
    return [
        TextSpan(offset=int(s.get("offset") or 0), length=int(s.get("length") or 0))
        for s in raw_spans
        if isinstance(s, dict)
    ]


def _read_paragraph(raw_paragraph: Any) -> AnalyzedParagraph:
    paragraph = _as_dict(raw_paragraph, "paragraphs")
    regions = paragraph.get("boundingRegions")
    page_number = None
    if isinstance(regions, list) and regions and isinstance(regions[0], dict):
        page_number = regions[0].get("pageNumber")
    return AnalyzedParagraph(
        content=str(paragraph.get("content") or ""),
        page_number=int(page_number) if _number(page_number) is not None else None,
        spans=_read_spans(paragraph.get("spans")),
    )


def read_paragraphs(raw: dict) -> list[AnalyzedParagraph]:
    paragraphs: list[AnalyzedParagraph] = []
    for index, raw_paragraph in enumerate(_as_list(raw, "paragraphs")):
        try:
            paragraphs.append(_read_paragraph(raw_paragraph))
        except ENTRY_ERRORS as exc:
            logger.warning("Skipping paragraphs[%d]: %s", index, exc)
    return paragraphs


def read_handwriting_spans(raw: dict) -> list[TextSpan]:
    spans: list[TextSpan] = []
    for raw_style in _as_list(raw, "styles"):
        style = _as_dict(raw_style, "styles")
        if style.get("isHandwritten"):
            spans.extend(_read_spans(style.get("spans")))
    return spans


def _read_section(name: str, reader: Callable[[], list], malformed: list[str]) -> list:
    try:
        return reader()
    except ENTRY_ERRORS as exc:
        logger.warning("Structural analysis section '%s' is malformed; treating as empty: %s",
                       name, exc)
        malformed.append(name)
        return []


def adapt_analysis(raw: Any) -> StructuralAnalysis:
    """Translate a raw layout-analysis payload into a :class:`StructuralAnalysis`.

    Already-adapted input is returned unchanged. Never raises for shape
    problems; unusable sections are listed in ``malformed_sections``.
    """

    if isinstance(raw, StructuralAnalysis):
        return raw
    if not isinstance(raw, dict):
        logger.warning("Structural analysis is %s, expected an object; treating as empty",
                       type(raw).__name__)
        return StructuralAnalysis(malformed_sections=["pages", "figures", "paragraphs", "styles"])

    if isinstance(raw.get("analyzeResult"), dict):
        raw = raw["analyzeResult"]

    flavours: set[str] = set()
    malformed: list[str] = []
    pages = _read_section("pages", lambda: read_pages(raw, flavours), malformed)
    figures = _read_section("figures", lambda: read_figures(raw, flavours), malformed)
    paragraphs = _read_section("paragraphs", lambda: read_paragraphs(raw), malformed)
    spans = _read_section("styles", lambda: read_handwriting_spans(raw), malformed)

    if raw.get("apiVersion"):
        schema_version = str(raw["apiVersion"])
    elif flavours:
        schema_version = "+".join(sorted(flavours))
    else:
        schema_version = "unknown"

    return StructuralAnalysis(
        schema_version=schema_version,
        pages=pages,
        figures=figures,
        paragraphs=paragraphs,
        handwriting_spans=spans,
        malformed_sections=malformed,
    )
