"""
Judgment PDF Extraction Module

Turns raw PDF bytes into per-page text for the chunker.

Strategy:
1. Digital pass with pdfplumber. The embedded text is gathered into one
   line stream and redistributed across pages proportionally
   (lines_per_page = ceil(total_lines / total_pages)). Page boundaries in
   the digital result are therefore estimates: a paragraph near a real page
   break may be attributed to the neighbouring page, and anchors inherit
   that imprecision. This is a known limitation, kept deliberately simple.
2. Density check: if the digital pass yields at least MIN_TEXT_LENGTH
   characters per page on average, it is accepted.
3. Otherwise the document is treated as scanned and every page is rasterized
   with pdf2image and read with Tesseract, one page at a time, inside a
   single OCR session that owns the temporary raster directory.

Results are all-or-nothing: any failure raises ExtractionFailure and no
partial ExtractionResult escapes.
"""

import io
import math
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path

import pdfplumber
import pytesseract
from pdf2image import convert_from_bytes

from judgment_analysis.config import MIN_TEXT_LENGTH, OCR_DPI, OCR_LANGUAGE, OCR_TEMP_PREFIX
from judgment_analysis.exceptions import AnalysisCancelled, ExtractionFailure
from judgment_analysis.logging_config import Timer, debug_log, error, info, warning

METHOD_DIGITAL = "digital"
METHOD_OCR = "ocr"
METHOD_HYBRID = "hybrid"


@dataclass(frozen=True)
class PageContent:
    """Text of one page and how it was obtained ('digital' or 'ocr')."""

    page_number: int
    text: str
    method: str = METHOD_DIGITAL

    def to_dict(self) -> dict:
        return {
            "pageNumber": self.page_number,
            "text": self.text,
            "extractionMethod": self.method,
        }


@dataclass(frozen=True)
class DocumentMetadata:
    """Fields of the PDF info dictionary that identify a judgment."""

    title: str | None = None
    author: str | None = None
    subject: str | None = None
    keywords: str | None = None

    @classmethod
    def from_info(cls, pdf_info: dict | None) -> "DocumentMetadata":
        pdf_info = pdf_info or {}
        return cls(
            title=_info_string(pdf_info.get("Title")),
            author=_info_string(pdf_info.get("Author")),
            subject=_info_string(pdf_info.get("Subject")),
            keywords=_info_string(pdf_info.get("Keywords")),
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "subject": self.subject,
            "keywords": self.keywords,
        }


@dataclass(frozen=True)
class ExtractionResult:
    """
    Outcome of extracting one judgment.

    Attributes:
        pages: PageContent in page order
        total_pages: Page count reported by the PDF
        extraction_method: 'digital', 'ocr' or 'hybrid'
        metadata: Info-dictionary fields from the digital pass
    """

    pages: tuple[PageContent, ...]
    total_pages: int
    extraction_method: str
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)

    @property
    def total_characters(self) -> int:
        return sum(len(page.text) for page in self.pages)

    def to_dict(self) -> dict:
        return {
            "pages": [page.to_dict() for page in self.pages],
            "totalPages": self.total_pages,
            "extractionMethod": self.extraction_method,
            "metadata": self.metadata.to_dict(),
        }


def _info_string(value) -> str | None:
    """PDF info values arrive as str, bytes or pdfminer objects."""
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    value = str(value).strip()
    return value or None


def _check_cancelled(cancel_event: threading.Event | None, where: str):
    if cancel_event is not None and cancel_event.is_set():
        debug_log(f"[EXTRACTOR] Cancelled {where}")
        raise AnalysisCancelled(f"Extraction cancelled {where}")


def _categorize_pdf_error(exc: Exception) -> str:
    """Map a pdfplumber/pdfminer exception onto a readable reason."""
    error_msg = str(exc).lower()
    if "password" in error_msg or "encrypted" in error_msg:
        return "PDF is password-protected or encrypted"
    if "damaged" in error_msg or "corrupt" in error_msg or "invalid" in error_msg:
        return "PDF file appears to be corrupted or damaged"
    if "no /root object" in error_msg or "not a pdf" in error_msg or "eof" in error_msg:
        return "Input is not a readable PDF document"
    return f"Failed to parse PDF: {exc}"


class _OCRSession:
    """
    One Tesseract engine configuration plus the temporary raster directory.

    Used as a context manager: the directory is created on entry and removed
    on every exit path, including errors and cancellation. Pages are
    rasterized and recognised strictly one after another.
    """

    def __init__(self, content: bytes, dpi: int = OCR_DPI, language: str = OCR_LANGUAGE):
        self._content = content
        self._dpi = dpi
        self._language = language
        self.temp_dir: str | None = None

    def __enter__(self):
        self.temp_dir = tempfile.mkdtemp(prefix=OCR_TEMP_PREFIX)
        debug_log(f"[EXTRACTOR] OCR session opened, raster dir {self.temp_dir}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.temp_dir:
            shutil.rmtree(self.temp_dir, ignore_errors=True)
            if os.path.exists(self.temp_dir):
                warning(f"[EXTRACTOR] Failed to remove OCR temp dir {self.temp_dir}")
            else:
                debug_log(f"[EXTRACTOR] OCR session closed, removed {self.temp_dir}")
            self.temp_dir = None
        return False

    def recognize_page(self, page_number: int) -> str:
        """Rasterize a single page into the session directory and OCR it."""
        raster_paths = convert_from_bytes(
            self._content,
            dpi=self._dpi,
            first_page=page_number,
            last_page=page_number,
            output_folder=self.temp_dir,
            fmt="png",
            paths_only=True,
        )
        if not raster_paths:
            raise RuntimeError(f"Failed to convert page {page_number} to image")

        text = pytesseract.image_to_string(raster_paths[0], lang=self._language)
        for raster_path in raster_paths:
            os.remove(raster_path)
        return text


class PDFExtractor:
    """
    Extracts per-page text from judgment PDFs with an OCR fallback.

    Example:
        extractor = PDFExtractor()
        result = extractor.extract_from_path("judgment.pdf")
        print(result.extraction_method, result.total_pages)
    """

    def __init__(self, min_text_length: int = MIN_TEXT_LENGTH, ocr_dpi: int = OCR_DPI,
                 ocr_language: str = OCR_LANGUAGE):
        self.min_text_length = min_text_length
        self.ocr_dpi = ocr_dpi
        self.ocr_language = ocr_language

    def extract_from_path(self, file_path, cancel_event: threading.Event | None = None) -> ExtractionResult:
        """
        Read a PDF from disk and extract it.

        Raises:
            ExtractionFailure: If the file cannot be read or parsed
        """
        file_path = Path(file_path)
        info(f"[EXTRACTOR] Extracting {file_path.name}")
        try:
            content = file_path.read_bytes()
        except OSError as e:
            error(f"[EXTRACTOR] Cannot read {file_path}: {e}")
            raise ExtractionFailure(f"Failed to read PDF {file_path}: {e}", phase="open") from e
        return self.extract(content, cancel_event=cancel_event)

    def extract(self, content: bytes, cancel_event: threading.Event | None = None) -> ExtractionResult:
        """
        Extract page text from PDF bytes, choosing digital parsing or OCR.

        Args:
            content: Raw PDF bytes
            cancel_event: Checked at every page boundary

        Returns:
            ExtractionResult with extraction_method 'digital' or 'ocr'

        Raises:
            ExtractionFailure: Unparseable input or any OCR page failure
            AnalysisCancelled: If cancel_event is set mid-extraction
        """
        with Timer("Digital PDF text extraction"):
            digital = self._extract_digital(content, cancel_event)

        threshold = self.min_text_length * digital.total_pages
        total_chars = digital.total_characters
        debug_log(
            f"[EXTRACTOR] Digital pass: {total_chars} chars over {digital.total_pages} pages "
            f"(threshold {threshold})"
        )

        if self.uses_digital_text(total_chars, digital.total_pages):
            return digital

        info("[EXTRACTOR] Minimal embedded text found, falling back to OCR")
        with Timer("OCR Processing"):
            pages = self._extract_with_ocr(content, digital.total_pages, cancel_event)

        return ExtractionResult(
            pages=pages,
            total_pages=digital.total_pages,
            extraction_method=METHOD_OCR,
            metadata=digital.metadata,
        )

    def uses_digital_text(self, total_chars: int, total_pages: int) -> bool:
        """Density rule: digital text is kept at or above min_text_length chars per page."""
        return total_chars >= self.min_text_length * total_pages

    def extract_metadata(self, content: bytes) -> DocumentMetadata:
        """Read only the PDF info dictionary (title/author/subject/keywords)."""
        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                return DocumentMetadata.from_info(pdf.metadata)
        except Exception as e:
            raise ExtractionFailure(_categorize_pdf_error(e), phase="open") from e

    def _extract_digital(self, content: bytes, cancel_event) -> ExtractionResult:
        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                total_pages = len(pdf.pages)
                debug_log(f"[EXTRACTOR] PDF has {total_pages} pages")
                metadata = DocumentMetadata.from_info(pdf.metadata)

                page_texts = []
                for i, page in enumerate(pdf.pages, 1):
                    _check_cancelled(cancel_event, f"before digital page {i}")
                    page_texts.append(page.extract_text() or "")
        except (AnalysisCancelled, ExtractionFailure):
            raise
        except Exception as e:
            reason = _categorize_pdf_error(e)
            error(f"[EXTRACTOR] {reason}")
            raise ExtractionFailure(reason, phase="digital") from e

        if total_pages == 0:
            raise ExtractionFailure("PDF has no pages", phase="digital")

        pages = self.distribute_lines("\n".join(page_texts), total_pages)
        return ExtractionResult(
            pages=pages,
            total_pages=total_pages,
            extraction_method=METHOD_DIGITAL,
            metadata=metadata,
        )

    @staticmethod
    def distribute_lines(text: str, total_pages: int) -> tuple[PageContent, ...]:
        """
        Split a document-wide text stream into total_pages estimated pages.

        Every page receives ceil(total_lines / total_pages) consecutive lines;
        trailing pages may be short or empty.
        """
        lines = text.split("\n")
        lines_per_page = math.ceil(len(lines) / total_pages) or 1

        pages = []
        for i in range(total_pages):
            start = i * lines_per_page
            end = min((i + 1) * lines_per_page, len(lines))
            pages.append(PageContent(
                page_number=i + 1,
                text="\n".join(lines[start:end]),
                method=METHOD_DIGITAL,
            ))
        return tuple(pages)

    def _extract_with_ocr(self, content: bytes, total_pages: int, cancel_event) -> tuple[PageContent, ...]:
        pages = []
        with _OCRSession(content, dpi=self.ocr_dpi, language=self.ocr_language) as session:
            for page_number in range(1, total_pages + 1):
                _check_cancelled(cancel_event, f"before OCR page {page_number}")
                debug_log(f"[EXTRACTOR] OCR processing page {page_number}/{total_pages}")
                try:
                    with Timer(f"OCR page {page_number}"):
                        text = session.recognize_page(page_number)
                except Exception as e:
                    error(f"[EXTRACTOR] OCR failed on page {page_number}: {e}")
                    raise ExtractionFailure(
                        f"OCR failed on page {page_number}: {e}", phase="ocr"
                    ) from e
                pages.append(PageContent(page_number=page_number, text=text, method=METHOD_OCR))
        return tuple(pages)
