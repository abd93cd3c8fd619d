"""
Extraction package: PDF bytes to per-page text (digital first, OCR fallback).
"""

from .pdf_extractor import (
    METHOD_DIGITAL,
    METHOD_HYBRID,
    METHOD_OCR,
    DocumentMetadata,
    ExtractionResult,
    PageContent,
    PDFExtractor,
)

__all__ = [
    "DocumentMetadata",
    "ExtractionResult",
    "METHOD_DIGITAL",
    "METHOD_HYBRID",
    "METHOD_OCR",
    "PageContent",
    "PDFExtractor",
]
