"""Debug artifacts for auditing vision segmentation quality.

For every page the vision model looked at, writes under ``output_dir``::

    pages/page-NNN.png              raw page raster
    pages/page-NNN_overlay.png      raster with numbered region boxes
    segments/page-NNN_segments.json regions, raw model response, metadata
"""

from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from .detector import DetectionObserver
from .geometry import to_pixel_rect
from .schema import DiagramCandidate, PixelBox, VisionPageResult
from .utils import pad_page_number

logger = logging.getLogger(__name__)

BOX_COLOR = (0, 255, 0)
BOX_WIDTH = 4


def draw_overlay(raster_path: str | Path, boxes: Sequence[tuple[int, int, int, int]], output_path: str | Path) -> None:
    """Draw each ``(left, top, right, bottom)`` box with its 1-based index."""
    with Image.open(raster_path) as img:
        annotated = img.convert("RGB")
    draw = ImageDraw.Draw(annotated)
    font = ImageFont.load_default(size=24)
    for index, box in enumerate(boxes, start=1):
        draw.rectangle(box, outline=BOX_COLOR, width=BOX_WIDTH)
        draw.text(
            (box[0] + 10, box[1] + 6),
            str(index),
            fill=(255, 255, 255),
            font=font,
            stroke_width=2,
            stroke_fill=(0, 0, 0),
        )
    annotated.save(output_path, format="PNG")


class DebugArtifactWriter(DetectionObserver):
    """Detection observer that persists per-page vision debug files."""

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)
        self.pages_dir = self.output_dir / "pages"
        self.segments_dir = self.output_dir / "segments"
        self.written_pages: list[int] = []

    def on_page_processed(
        self,
        page_number: int,
        candidates: Sequence[DiagramCandidate],
        vision_result: VisionPageResult | None = None,
    ) -> None:
        if vision_result is None or not vision_result.image_path:
            return
        try:
            self.write_page(page_number, candidates, vision_result)
        except Exception as exc:
            logger.warning("Failed to write vision debug artifacts for page %d: %s", page_number, exc)

    def write_page(
        self,
        page_number: int,
        candidates: Sequence[DiagramCandidate],
        vision_result: VisionPageResult,
    ) -> Path:
        self.pages_dir.mkdir(parents=True, exist_ok=True)
        self.segments_dir.mkdir(parents=True, exist_ok=True)

        padded = pad_page_number(page_number)
        page_png = self.pages_dir / f"page-{padded}.png"
        overlay_png = self.pages_dir / f"page-{padded}_overlay.png"
        segments_json = self.segments_dir / f"page-{padded}_segments.json"

        shutil.copyfile(vision_result.image_path, page_png)

        width, height = vision_result.raster_width, vision_result.raster_height
        boxes = []
        regions = []
        for candidate in candidates:
            region = candidate.bounding_region
            if not isinstance(region, PixelBox):
                continue
            rect = to_pixel_rect(region, width, height)
            boxes.append(rect.as_box())
            regions.append({
                "id": candidate.id,
                "label": candidate.label,
                "confidence": candidate.confidence,
                "x": round(rect.left / width, 4),
                "y": round(rect.top / height, 4),
                "width": round(rect.width / width, 4),
                "height": round(rect.height / height, 4),
                "xPx": rect.left,
                "yPx": rect.top,
                "widthPx": rect.width,
                "heightPx": rect.height,
            })
        draw_overlay(vision_result.image_path, boxes, overlay_png)

        payload = {
            "page": page_number,
            "imagePath": f"pages/{page_png.name}",
            "regions": regions,
            "rawResponse": vision_result.raw_response,
            "error": vision_result.error,
            "metadata": {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "model": vision_result.model,
                "imageWidth": width,
                "imageHeight": height,
            },
        }
        segments_json.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        self.written_pages.append(page_number)
        logger.debug("Wrote vision debug artifacts for page %d to %s", page_number, self.output_dir)
        return segments_json
