"""Pydantic models for diagram detection and extraction results."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Quality = Literal["ok", "low_confidence", "handwriting"]
DiagramSource = Literal["structural_figure", "structural_image", "vision_segment"]

DIAGRAM_SOURCES: tuple[str, ...] = ("structural_figure", "structural_image", "vision_segment")


# ---------------------------------------------------------------------------
# Bounding regions (tagged union)
# ---------------------------------------------------------------------------


class PhysicalPolygon(BaseModel):
    """Polygon in the layout analyzer's physical units (inches or points).

    ``points`` is a flat ``[x0, y0, x1, y1, ...]`` list. Page dimensions are in
    the same unit; when they are unknown the points are read as 0..1 fractions.
    """

    kind: Literal["physical_polygon"] = "physical_polygon"
    points: List[float]
    page_width: float | None = None
    page_height: float | None = None
    unit: str | None = None  # "inch" | "point" | "pixel"

    @field_validator("points")
    @classmethod
    def _even_vertex_list(cls, value: List[float]) -> List[float]:
        if len(value) < 2 or len(value) % 2:
            raise ValueError("polygon must hold an even, non-zero number of coordinates")
        return value


class PixelBox(BaseModel):
    """Axis-aligned box in pixels of one specific rendered page raster."""

    kind: Literal["pixel_box"] = "pixel_box"
    x: float
    y: float
    width: float
    height: float
    page_image_path: str = ""
    raster_width: int | None = None
    raster_height: int | None = None


BoundingRegion = Annotated[Union[PhysicalPolygon, PixelBox], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Candidates and assets
# ---------------------------------------------------------------------------


class DiagramCandidate(BaseModel):
    """A detected-but-not-yet-extracted diagram region."""

    id: str = Field(frozen=True)
    page: int = Field(ge=1)
    source: DiagramSource = Field(frozen=True)
    bounding_region: BoundingRegion | None = None
    quality: Quality = "ok"
    confidence: float | None = None
    raw_caption_text: str | None = None
    title: str | None = None
    label: str | None = None
    section_path: List[str] = Field(default_factory=list)
    image_path: str = ""  # relative to out_dir once cropped


class DiagramAsset(BaseModel):
    """Externally visible projection of a candidate after extraction."""

    model_config = ConfigDict(frozen=True)

    id: str
    page: int
    source: DiagramSource
    quality: Quality
    image_path: str = ""
    title: str | None = None
    label: str | None = None
    raw_caption_text: str | None = None
    description: str | None = None  # filled by a downstream captioning step
    source_pdf: str = ""
    section_path: List[str] = Field(default_factory=list)
    bounding_region: BoundingRegion | None = None

    @classmethod
    def from_candidate(cls, candidate: DiagramCandidate, source_pdf: str) -> "DiagramAsset":
        return cls(
            id=candidate.id,
            page=candidate.page,
            source=candidate.source,
            quality=candidate.quality,
            image_path=candidate.image_path,
            title=candidate.title,
            label=candidate.label,
            raw_caption_text=candidate.raw_caption_text,
            source_pdf=source_pdf,
            section_path=list(candidate.section_path),
            bounding_region=candidate.bounding_region,
        )

    def manifest_entry(self) -> dict[str, Any]:
        """Fields serialised per diagram into a job manifest (no geometry)."""
        return {
            "id": self.id,
            "title": self.title,
            "imagePath": self.image_path,
            "page": self.page,
            "quality": self.quality,
            "source": self.source,
            "rawCaptionText": self.raw_caption_text,
            "description": self.description,
        }


# ---------------------------------------------------------------------------
# Rendering and vision results
# ---------------------------------------------------------------------------


class PageRasterEntry(BaseModel):
    """One rendered page raster on disk."""

    model_config = ConfigDict(frozen=True)

    document_path: str
    page_number: int
    scale: float
    path: str
    width: int
    height: int


class VisionRegion(BaseModel):
    """One region returned by the vision model, in pixels of the submitted raster."""

    x: float
    y: float
    width: float
    height: float
    label: str | None = None
    confidence: float | None = None


class VisionDetectionResult(BaseModel):
    """Typed regions plus the unparsed model output, kept for debugging."""

    regions: List[VisionRegion] = Field(default_factory=list)
    raw_response: Any = None
    error: str | None = None


class VisionPageResult(BaseModel):
    """Vision segmentation outcome for one page."""

    page: int
    image_path: str = ""  # "" when the page could not be rendered
    raster_width: int = 0
    raster_height: int = 0
    regions: List[VisionRegion] = Field(default_factory=list)
    raw_response: Any = None
    error: str | None = None
    model: str | None = None


# ---------------------------------------------------------------------------
# Options and results
# ---------------------------------------------------------------------------


class DiagramOptions(BaseModel):
    """Configuration surface consumed by detection and extraction."""

    enable_vision_fallback: bool = False
    max_vision_pages: int = Field(default=20, ge=0)
    debug: bool = False
    vision_debug: bool = False
    render_scale: float = Field(default=2.0, gt=0)
    crop_padding: float = Field(default=0.05, ge=0, le=0.5)
    vision_model: str = "gpt-4o-mini"
    extract_workers: int = Field(default=1, ge=1)
    embedded_images: bool = False
    missing_confidence: float | None = Field(default=None, ge=0, le=1)


class DetectionResult(BaseModel):
    """Candidates produced by the hybrid detector plus per-source counts."""

    candidates: List[DiagramCandidate] = Field(default_factory=list)
    counts: dict[str, int] = Field(
        default_factory=lambda: {source: 0 for source in DIAGRAM_SOURCES}
    )
    covered_pages: List[int] = Field(default_factory=list)
    vision_pages: List[int] = Field(default_factory=list)
    vision_failed_pages: List[int] = Field(default_factory=list)


class DocumentDiagramsResult(BaseModel):
    """Document-level diagram extraction result."""

    model_config = ConfigDict(json_encoders={datetime: lambda dt: dt.isoformat()})

    doc_id: str
    filename: str
    ingested_at: datetime
    diagrams_total: int
    extracted_total: int
    counts_by_source: dict[str, int] = Field(default_factory=dict)
    pages_scanned_by_vision: List[int] = Field(default_factory=list)
    diagrams: List[DiagramAsset] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Structural-analysis input (after adaptation)
# ---------------------------------------------------------------------------


class TextSpan(BaseModel):
    offset: int = 0
    length: int = 0


class AnalyzedRegion(BaseModel):
    """A bounding region as reported by the layout analyzer."""

    page_number: int = 1
    polygon: List[float] = Field(default_factory=list)


class AnalyzedFigure(BaseModel):
    id: str | None = None
    regions: List[AnalyzedRegion] = Field(default_factory=list)
    caption: str | None = None
    confidence: float | None = None


class AnalyzedImage(BaseModel):
    regions: List[AnalyzedRegion] = Field(default_factory=list)
    confidence: float | None = None


class AnalyzedPage(BaseModel):
    page_number: int
    width: float | None = None
    height: float | None = None
    unit: str | None = None
    images: List[AnalyzedImage] = Field(default_factory=list)


class AnalyzedParagraph(BaseModel):
    content: str = ""
    page_number: int | None = None
    spans: List[TextSpan] = Field(default_factory=list)


class StructuralAnalysis(BaseModel):
    """Layout-analysis result mapped into the shape the detector consumes."""

    schema_version: str = "unknown"
    pages: List[AnalyzedPage] = Field(default_factory=list)
    figures: List[AnalyzedFigure] = Field(default_factory=list)
    paragraphs: List[AnalyzedParagraph] = Field(default_factory=list)
    handwriting_spans: List[TextSpan] = Field(default_factory=list)  # read via quality.build_handwriting_checker
    malformed_sections: List[str] = Field(default_factory=list)

    def page(self, page_number: int) -> AnalyzedPage | None:
        for page in self.pages:
            if page.page_number == page_number:
                return page
        return None
