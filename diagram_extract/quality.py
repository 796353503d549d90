"""Map detector confidence and handwriting flags to quality tiers.

Diagram detection only uses :func:`classify_detection`. The handwriting
helpers (:func:`build_handwriting_checker`, :func:`classify_paragraph`) are
public API for downstream consumers of narrative text, which read
``StructuralAnalysis.handwriting_spans`` and ``paragraphs`` from the adapted
analysis; nothing in the diagram pipeline calls them.
"""

from __future__ import annotations

from typing import Callable, Iterable

from .schema import AnalyzedParagraph, Quality, TextSpan

LOW_CONFIDENCE_THRESHOLD = 0.7


def classify(
    confidence: float | None,
    is_handwritten: bool = False,
    threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> Quality:
    """Return ``"handwriting"``, ``"low_confidence"`` or ``"ok"``.

    Handwriting wins over confidence. A missing confidence is ``"ok"``;
    callers that want another policy substitute a default before calling.
    """
    if is_handwritten:
        return "handwriting"
    if confidence is not None and confidence < threshold:
        return "low_confidence"
    return "ok"


def classify_detection(
    confidence: float | None,
    missing_default: float | None = None,
    threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> Quality:
    """Classify a structural detection, applying the missing-score policy."""
    if confidence is None:
        confidence = missing_default
    return classify(confidence, False, threshold)


def build_handwriting_checker(spans: Iterable[TextSpan]) -> Callable[[int, int], bool]:
    """Return ``check(offset, length)`` that is True when ``[offset, offset+length)``
    overlaps any handwritten span."""
    ranges = [(span.offset, span.offset + span.length) for span in spans if span.length > 0]

    def check(offset: int, length: int) -> bool:
        end = offset + length
        return any(start < end and stop > offset for start, stop in ranges)

    return check


def classify_paragraph(
    paragraph: AnalyzedParagraph,
    is_handwritten: Callable[[int, int], bool],
    confidence: float | None = None,
) -> Quality:
    """Quality tier for narrative text; any handwritten span marks the paragraph."""
    handwritten = any(is_handwritten(span.offset, span.length) for span in paragraph.spans)
    return classify(confidence, handwritten)
