"""
Judgment Chunking Engine

Splits per-page judgment text into anchored chunks for the analysis steps.

1. Paragraph detection: blank lines separate paragraphs; within a block, a
   new line that opens with legal sub-paragraph numbering ("12.", "(iv)",
   "(a)", "B.", "c)") also starts a paragraph.
2. Paragraph numbering: one counter for the whole judgment, advanced only
   for non-empty paragraphs. Anchors use this number, so "para 14" means the
   same thing on every page.
3. Size policy: a paragraph of at most MAX_CHUNK_SIZE characters is one
   chunk. Longer paragraphs become overlapping windows whose ends are pulled
   back to a sentence break when one exists in the last
   SENTENCE_SEARCH_WINDOW characters.

Chunk ids are "<judgment>-<page>-<paragraph>-<running index>", so chunking
the same pages twice reproduces the same ids.
"""

import re
from dataclasses import dataclass
from typing import Iterable

from judgment_analysis.config import MAX_CHUNK_SIZE, MIN_CHUNK_SIZE, OVERLAP_SIZE, SENTENCE_SEARCH_WINDOW
from judgment_analysis.extraction import METHOD_DIGITAL, PageContent
from judgment_analysis.logging_config import debug_log

PARAGRAPH_BREAK = re.compile(r"\n\n+")
NUMBERED_PARAGRAPH_START = re.compile(r"\n(?=\d+\.|\([0-9a-z]+\)|[A-Z]\.|[a-z]\))")
SENTENCE_END = re.compile(r"[.!?]\s")


@dataclass(frozen=True)
class ChunkAnchor:
    """Location of a chunk: page, global paragraph number and offsets within the paragraph."""

    page_number: int
    paragraph_number: int
    start_char: int
    end_char: int

    def to_dict(self) -> dict:
        return {
            "pageNumber": self.page_number,
            "paragraphNumber": self.paragraph_number,
            "startChar": self.start_char,
            "endChar": self.end_char,
        }


@dataclass(frozen=True)
class JudgmentChunk:
    chunk_id: str
    text: str
    anchor: ChunkAnchor
    word_count: int
    char_count: int

    @property
    def page_number(self) -> int:
        return self.anchor.page_number

    @property
    def paragraph_number(self) -> int:
        return self.anchor.paragraph_number

    def to_dict(self) -> dict:
        return {
            "chunkId": self.chunk_id,
            "text": self.text,
            "anchor": self.anchor.to_dict(),
            "metadata": {
                "pageNumber": self.anchor.page_number,
                "paragraphNumber": self.anchor.paragraph_number,
                "wordCount": self.word_count,
                "charCount": self.char_count,
            },
        }


@dataclass(frozen=True)
class ChunkingStatistics:
    total_pages: int
    total_paragraphs: int
    average_chunk_size: int

    def to_dict(self) -> dict:
        return {
            "totalPages": self.total_pages,
            "totalParagraphs": self.total_paragraphs,
            "averageChunkSize": self.average_chunk_size,
        }


@dataclass(frozen=True)
class ChunkingResult:
    chunks: tuple[JudgmentChunk, ...]
    statistics: ChunkingStatistics

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def to_dict(self) -> dict:
        return {
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "totalChunks": self.total_chunks,
            "statistics": self.statistics.to_dict(),
        }


def count_words(text: str) -> int:
    return len(text.split())


def extract_paragraphs(text: str) -> list[str]:
    """
    Split page text into paragraphs, dropping blank ones.

    Paragraph text is returned unmodified (not stripped) so that anchor
    offsets index directly into it.
    """
    paragraphs = []
    for block in PARAGRAPH_BREAK.split(text):
        paragraphs.extend(NUMBERED_PARAGRAPH_START.split(block))
    return [p for p in paragraphs if p.strip()]


class JudgmentChunker:
    """
    Deterministic paragraph-anchored chunker.

    Example:
        chunker = JudgmentChunker()
        result = chunker.chunk_pages(extraction.pages, judgment_id="J-42")
        for chunk in result.chunks:
            print(chunk.chunk_id, chunk.anchor.paragraph_number)
    """

    def __init__(self, max_chunk_size: int = MAX_CHUNK_SIZE, min_chunk_size: int = MIN_CHUNK_SIZE,
                 overlap_size: int = OVERLAP_SIZE, sentence_search_window: int = SENTENCE_SEARCH_WINDOW):
        if not 0 < min_chunk_size <= max_chunk_size:
            raise ValueError("min_chunk_size must be positive and no larger than max_chunk_size")
        self.max_chunk_size = max_chunk_size
        self.min_chunk_size = min_chunk_size
        self.overlap_size = overlap_size
        self.sentence_search_window = sentence_search_window

    def chunk_pages(self, pages: Iterable[PageContent], judgment_id) -> ChunkingResult:
        """
        Chunk pages in reading order.

        Args:
            pages: PageContent sequence, normally ExtractionResult.pages
            judgment_id: Caller-assigned judgment identifier used in chunk ids

        Returns:
            ChunkingResult with exact statistics over the produced chunks
        """
        pages = list(pages)
        chunks: list[JudgmentChunk] = []
        paragraph_counter = 0

        for page in pages:
            page_chunk_start = len(chunks)
            for paragraph in extract_paragraphs(page.text):
                paragraph_counter += 1
                for start, end in self.paragraph_windows(paragraph):
                    text = paragraph if (start, end) == (0, len(paragraph)) else paragraph[start:end].strip()
                    chunks.append(JudgmentChunk(
                        chunk_id=f"{judgment_id}-{page.page_number}-{paragraph_counter}-{len(chunks)}",
                        text=text,
                        anchor=ChunkAnchor(
                            page_number=page.page_number,
                            paragraph_number=paragraph_counter,
                            start_char=start,
                            end_char=end,
                        ),
                        word_count=count_words(text),
                        char_count=len(text),
                    ))
            debug_log(f"[CHUNKER] Page {page.page_number}: {len(chunks) - page_chunk_start} chunks")

        total_chars = sum(len(chunk.text) for chunk in chunks)
        average = round(total_chars / len(chunks)) if chunks else 0

        statistics = ChunkingStatistics(
            total_pages=len(pages),
            total_paragraphs=paragraph_counter,
            average_chunk_size=average,
        )
        debug_log(
            f"[CHUNKER] Judgment {judgment_id}: {len(chunks)} chunks from "
            f"{paragraph_counter} paragraphs, average {average} chars"
        )
        return ChunkingResult(chunks=tuple(chunks), statistics=statistics)

    def chunk_document(self, text: str, judgment_id, page_number: int = 1) -> ChunkingResult:
        """Chunk unpaginated text as a single digital page."""
        page = PageContent(page_number=page_number, text=text, method=METHOD_DIGITAL)
        return self.chunk_pages([page], judgment_id)

    def paragraph_windows(self, paragraph: str) -> list[tuple[int, int]]:
        """
        Compute (start, end) offsets of the chunks for one paragraph.

        Consecutive windows overlap by overlap_size characters, but each
        window starts at least min_chunk_size after the previous one.
        """
        length = len(paragraph)
        if length <= self.max_chunk_size:
            return [(0, length)]

        windows = []
        position = 0
        while position < length:
            end = min(position + self.max_chunk_size, length)

            if end < length:
                search_start = max(position + self.min_chunk_size, end - self.sentence_search_window)
                match = SENTENCE_END.search(paragraph, search_start, end)
                if match:
                    end = match.start() + 2  # keep the punctuation and the following space

            windows.append((position, end))
            if end >= length:
                break
            position = max(end - self.overlap_size, position + self.min_chunk_size)

        return windows
