"""Utility helpers and the error taxonomy for diagram extraction."""

from __future__ import annotations

import hashlib
import itertools
import os
import threading
from pathlib import Path

import fitz  # PyMuPDF

PDF_SUFFIXES = {".pdf"}
IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"}


class ExtractionError(Exception):
    """Base exception for extraction errors."""


class PdfValidationError(ExtractionError):
    """Raised when the source document is missing, unreadable or unsupported."""


class PdfProcessingError(ExtractionError):
    """Raised when the source document cannot be opened at all."""


class PageOutOfRangeError(ExtractionError):
    """Raised when a requested page number is outside ``[1, page_count]``."""

    def __init__(self, page_number: int, page_count: int) -> None:
        super().__init__(
            f"Page {page_number} is out of range for document with {page_count} pages"
        )
        self.page_number = page_number
        self.page_count = page_count


class RenderFailure(ExtractionError):
    """Raised when rasterising a page fails for a recoverable reason."""


class InvalidCropRegionError(ExtractionError):
    """Raised when crop geometry is degenerate (zero or negative extent)."""


class VisionServiceUnavailable(ExtractionError):
    """Raised when the vision service has no credential configured."""


class VisionCallError(ExtractionError):
    """Raised when a single vision segmentation call fails."""


class MalformedDetectorOutput(ExtractionError):
    """Raised when a detector's input is missing expected fields."""


def validate_document_path(path: str | Path) -> Path:
    """Validate that the source document exists, is readable and is supported."""

    doc_path = Path(path).expanduser().resolve()
    if not doc_path.exists():
        raise PdfValidationError(f"Document not found: {doc_path}")
    if not doc_path.is_file():
        raise PdfValidationError(f"Document path is not a file: {doc_path}")
    if doc_path.suffix.lower() not in PDF_SUFFIXES | IMAGE_SUFFIXES:
        raise PdfValidationError(
            f"Unsupported document type {doc_path.suffix!r}; expected a PDF or raster image."
        )
    if not os.access(doc_path, os.R_OK):
        raise PdfValidationError(f"Document is not readable: {doc_path}")
    return doc_path


def is_pdf(path: str | Path) -> bool:
    return Path(path).suffix.lower() in PDF_SUFFIXES


def get_page_count(doc_path: str | Path) -> int:
    """Return the number of pages in a document (raster images count as one)."""

    if not is_pdf(doc_path):
        return 1
    try:
        with fitz.open(str(doc_path)) as doc:
            return doc.page_count
    except Exception as exc:
        raise PdfProcessingError(f"Failed to open document {doc_path}: {exc}") from exc


def document_key(doc_path: str | Path) -> str:
    """Short stable key for a document, used to namespace cached rasters."""

    resolved = str(Path(doc_path).expanduser().resolve())
    return hashlib.sha1(resolved.encode("utf-8")).hexdigest()[:12]


def pad_page_number(page_number: int) -> str:
    """Zero-pad a page number to three digits (``7`` -> ``"007"``)."""

    return f"{page_number:03d}"


class SequentialIdGenerator:
    """Thread-safe ``<prefix>_<n>`` id generator.

    Ids never repeat for the lifetime of one generator instance.
    """

    def __init__(self, prefix: str = "diagram", start: int = 1) -> None:
        self.prefix = prefix
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            n = next(self._counter)
        return f"{self.prefix}_{n}"


# Process-wide default, used when a caller does not inject its own generator.
default_id_generator = SequentialIdGenerator("diagram")
