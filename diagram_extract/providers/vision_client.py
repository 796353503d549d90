"""OpenAI Vision client for locating diagram regions on a page raster."""

from __future__ import annotations

import base64
import json
import logging
import os
import time
from io import BytesIO
from pathlib import Path
from typing import Any

import openai
from PIL import Image

from ..config import VISION_MODEL, VISION_TIMEOUT_SEC
from ..utils import VisionCallError, VisionServiceUnavailable

logger = logging.getLogger(__name__)

VISION_MAX_RETRIES = 2

SEGMENT_PROMPT = (
    "You are looking at one page of a scanned or digital document ({width}x{height} pixels). "
    "Find every diagram, technical drawing, schematic, chart, photo or hand-drawn sketch. "
    "Ignore plain text blocks, tables, headers and logos. "
    'Respond with JSON only: {{"regions": [{{"x": int, "y": int, "width": int, "height": int, '
    '"label": str, "confidence": float}}]}} where x, y is the top-left corner in pixels of the '
    "full page image. If there are no diagrams, respond with {{\"regions\": []}}."
)


def is_configured() -> bool:
    return bool(os.environ.get("OPENAI_API_KEY"))


def _image_to_base64_png(image_path: str | Path) -> tuple[str, int, int]:
    with Image.open(image_path) as img:
        width, height = img.size
        buf = BytesIO()
        img.convert("RGB").save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("utf-8"), width, height


def _client(timeout_sec: int) -> openai.OpenAI:
    return openai.OpenAI(timeout=timeout_sec)


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def region_items(parsed: Any) -> list:
    """Pull the region list out of the accepted response shapes."""
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in ("regions", "diagrams"):
            if isinstance(parsed.get(key), list):
                return parsed[key]
    return []


def detect_regions_in_image(
    image_path: str | Path,
    model: str = VISION_MODEL,
    timeout_sec: int = VISION_TIMEOUT_SEC,
    max_retries: int = VISION_MAX_RETRIES,
) -> tuple[list, Any]:
    """Ask the vision model for diagram boxes on one page image.

    Returns ``(items, parsed_response)`` where ``items`` are the unvalidated
    region dicts. Raises :class:`VisionServiceUnavailable` without a
    credential and :class:`VisionCallError` once retries are exhausted.
    """
    if not is_configured():
        raise VisionServiceUnavailable("OPENAI_API_KEY is not set")

    b64, width, height = _image_to_base64_png(image_path)
    prompt = SEGMENT_PROMPT.format(width=width, height=height)

    client = _client(timeout_sec)
    last_err: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            resp = client.chat.completions.create(
                model=model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{b64}"}},
                        ],
                    }
                ],
                response_format={"type": "json_object"},
                timeout=timeout_sec,
            )
            content = resp.choices[0].message.content if resp.choices else None
            if not content:
                return [], None
            parsed = json.loads(_strip_code_fence(content))
            return region_items(parsed), parsed
        except (openai.OpenAIError, json.JSONDecodeError) as e:
            last_err = e
            logger.warning("Vision call failed for %s (attempt %d): %s",
                           Path(image_path).name, attempt + 1, e)
            if attempt < max_retries:
                time.sleep(1.0 * (attempt + 1))
    raise VisionCallError(f"vision segmentation failed after {max_retries + 1} attempts: {last_err}")
