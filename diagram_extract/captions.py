"""Caption inference and human-readable titles for diagram candidates."""

from __future__ import annotations

import re
from typing import Iterable

from .schema import AnalyzedParagraph

# "Figure 3.2:", "Fig. 1", "Diagram A:", "Image 4-b" ...
CAPTION_RX = re.compile(r"^(Figure|Fig\.?|Diagram|Image)\s+[\dA-Z][\dA-Z.-]*\s*:?\s*", re.I)
CAPTION_PREFIX_RX = re.compile(r"^(Figure|Fig\.?|Diagram|Image)\s+([\dA-Z][\dA-Z.-]*)", re.I)


def caption_from_paragraphs(
    paragraphs: Iterable[AnalyzedParagraph], page_number: int
) -> str | None:
    """Return the first same-page paragraph that reads like a figure caption."""
    for paragraph in paragraphs:
        if paragraph.page_number != page_number:
            continue
        content = paragraph.content.strip()
        if content and CAPTION_RX.match(content):
            return content
    return None


def title_from_caption(caption: str | None) -> str | None:
    """``"Fig. 3.2: Roll cage"`` -> ``"Fig. 3.2"``."""
    if not caption:
        return None
    match = CAPTION_PREFIX_RX.match(caption.strip())
    return match.group(0).strip() if match else None


def figure_title(figure_id: str | None, caption: str | None, page_number: int) -> str:
    if figure_id:
        return f"Figure {figure_id}"
    return title_from_caption(caption) or f"Figure on page {page_number}"


def image_title(page_number: int) -> str:
    return f"Image on page {page_number}"


def vision_title(label: str | None, page_number: int) -> str:
    label = (label or "").strip()
    return label or f"Diagram on page {page_number}"


def section_path_for_page(page_number: int) -> list[str]:
    return [f"Page {page_number}"]
