"""Centralized configuration for diagram detection and extraction.

All env-driven settings live here so there is a single source of truth.
Import from ``diagram_extract.config`` in detector.py, pipeline.py, etc.
"""

from __future__ import annotations

import logging
import os

from .schema import DiagramOptions

logger = logging.getLogger(__name__)


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int, lo: int = 1, hi: int = 10_000) -> int:
    try:
        return max(lo, min(hi, int(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float, lo: float, hi: float) -> float:
    try:
        return max(lo, min(hi, float(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


def _env_optional_float(name: str) -> float | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return max(0.0, min(1.0, float(raw)))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Detection flags
# ---------------------------------------------------------------------------
ENABLE_VISION_FALLBACK: bool = _env_bool("ENABLE_VISION_DIAGRAM_SEGMENTATION")
MAX_VISION_PAGES: int = _env_int("MAX_VISION_PAGES", default=20, lo=0, hi=1000)
EXTRACT_EMBEDDED_IMAGES: bool = _env_bool("EXTRACT_EMBEDDED_IMAGES")
DEBUG: bool = _env_bool("DIAGRAM_DEBUG")
VISION_DEBUG: bool = _env_bool("VISION_DEBUG")

# Confidence assigned to structural detections that carry no score.
# None keeps them "ok"; e.g. 0.5 routes them to "low_confidence".
MISSING_CONFIDENCE_DEFAULT: float | None = _env_optional_float("DIAGRAM_MISSING_CONFIDENCE")

# ---------------------------------------------------------------------------
# Rendering / cropping
# ---------------------------------------------------------------------------
RENDER_SCALE: float = _env_float("RENDER_SCALE", default=2.0, lo=0.25, hi=8.0)
CROP_PADDING: float = _env_float("CROP_PADDING", default=0.05, lo=0.0, hi=0.5)
RENDER_FALLBACK: bool = _env_bool("PDF_RENDER_FALLBACK")
EXTRACT_WORKERS: int = _env_int("EXTRACT_WORKERS", default=1, hi=16)

# ---------------------------------------------------------------------------
# Vision service (rate- and cost-sensitive)
# ---------------------------------------------------------------------------
VISION_MODEL: str = os.environ.get("VISION_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
VISION_CALL_DELAY_SEC: float = _env_float("VISION_CALL_DELAY_SEC", default=0.5, lo=0.0, hi=30.0)
VISION_MAX_CONCURRENCY: int = _env_int("VISION_MAX_CONCURRENCY", default=1, hi=8)
VISION_TIMEOUT_SEC: int = _env_int("VISION_TIMEOUT_SEC", default=60, hi=600)


def options_from_env() -> DiagramOptions:
    """Build a :class:`DiagramOptions` from the env-driven constants above."""
    return DiagramOptions(
        enable_vision_fallback=ENABLE_VISION_FALLBACK,
        max_vision_pages=MAX_VISION_PAGES,
        debug=DEBUG,
        vision_debug=VISION_DEBUG,
        render_scale=RENDER_SCALE,
        crop_padding=CROP_PADDING,
        vision_model=VISION_MODEL,
        extract_workers=EXTRACT_WORKERS,
        embedded_images=EXTRACT_EMBEDDED_IMAGES,
        missing_confidence=MISSING_CONFIDENCE_DEFAULT,
    )


def log_startup_config() -> None:
    """Log one line summarising active configuration."""
    logger.info(
        "Diagram config: ENABLE_VISION_FALLBACK=%s MAX_VISION_PAGES=%d "
        "RENDER_SCALE=%.2f CROP_PADDING=%.3f VISION_MODEL=%s "
        "VISION_MAX_CONCURRENCY=%d EXTRACT_WORKERS=%d "
        "EXTRACT_EMBEDDED_IMAGES=%s DEBUG=%s VISION_DEBUG=%s "
        "OPENAI_API_KEY=%s",
        ENABLE_VISION_FALLBACK,
        MAX_VISION_PAGES,
        RENDER_SCALE,
        CROP_PADDING,
        VISION_MODEL,
        VISION_MAX_CONCURRENCY,
        EXTRACT_WORKERS,
        EXTRACT_EMBEDDED_IMAGES,
        DEBUG,
        VISION_DEBUG,
        "set" if os.environ.get("OPENAI_API_KEY") else "unset",
    )
