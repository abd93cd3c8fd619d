"""
Tests for the judgment chunking engine.

Covers paragraph detection, global paragraph numbering, long-paragraph
windowing with overlap, deterministic chunk ids and exact statistics.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from judgment_analysis.chunking_engine import JudgmentChunker, extract_paragraphs
from judgment_analysis.extraction import PageContent

SENTENCE = "The appellant relied on the record of the trial court. "


def long_paragraph(length: int = 2500) -> str:
    text = SENTENCE * (length // len(SENTENCE) + 1)
    return text[:length]


@pytest.fixture
def chunker():
    return JudgmentChunker()


@pytest.fixture
def scenario_pages():
    """Two-page digital judgment: two short numbered paragraphs, then one long one."""
    return [
        PageContent(page_number=1, text="1. Facts...\n\n2. Issues..."),
        PageContent(page_number=2, text=long_paragraph(2500)),
    ]


class TestParagraphExtraction:
    """Tests for extract_paragraphs."""

    def test_blank_lines_separate_paragraphs(self):
        text = "First paragraph.\n\nSecond paragraph.\n\n\n\nThird paragraph."
        assert extract_paragraphs(text) == ["First paragraph.", "Second paragraph.", "Third paragraph."]

    def test_numbered_lines_start_new_paragraphs(self):
        text = "JUDGMENT\n1. The appeal arises from a decree.\n2. Notice was issued.\n(a) first limb\n(b) second limb"
        paragraphs = extract_paragraphs(text)
        assert paragraphs == [
            "JUDGMENT",
            "1. The appeal arises from a decree.",
            "2. Notice was issued.",
            "(a) first limb",
            "(b) second limb",
        ]

    def test_letter_markers_start_new_paragraphs(self):
        text = "Points for determination\nA. Whether the sale was valid\nb) whether notice was served"
        assert len(extract_paragraphs(text)) == 3

    def test_continuation_lines_stay_together(self):
        text = "The learned counsel submitted that\nthe limitation period had expired."
        assert extract_paragraphs(text) == [text]

    def test_blank_paragraphs_are_dropped(self):
        assert extract_paragraphs("\n\n\n   \n\nText") == ["Text"]
        assert extract_paragraphs("") == []


class TestScenarioTwoPageJudgment:
    """End-to-end chunking of a short page and a 2500 character paragraph."""

    def test_page_one_yields_two_chunks(self, chunker, scenario_pages):
        result = chunker.chunk_pages(scenario_pages, "J1")
        page_one = [c for c in result.chunks if c.page_number == 1]

        assert [c.text for c in page_one] == ["1. Facts...", "2. Issues..."]
        assert [c.paragraph_number for c in page_one] == [1, 2]
        assert [c.chunk_id for c in page_one] == ["J1-1-1-0", "J1-1-2-1"]

    def test_long_paragraph_yields_overlapping_chunks(self, chunker, scenario_pages):
        result = chunker.chunk_pages(scenario_pages, "J1")
        page_two = [c for c in result.chunks if c.page_number == 2]

        assert len(page_two) >= 3
        assert all(c.paragraph_number == 3 for c in page_two)
        for previous, current in zip(page_two, page_two[1:]):
            assert current.anchor.start_char < previous.anchor.end_char

    def test_statistics_match_exact_arithmetic(self, chunker, scenario_pages):
        result = chunker.chunk_pages(scenario_pages, "J1")
        total_chars = sum(len(c.text) for c in result.chunks)

        assert result.total_chunks == len(result.chunks)
        assert result.statistics.total_pages == 2
        assert result.statistics.total_paragraphs == 3
        assert result.statistics.average_chunk_size == round(total_chars / len(result.chunks))

    def test_to_dict_uses_record_field_names(self, chunker, scenario_pages):
        data = chunker.chunk_pages(scenario_pages, "J1").to_dict()

        assert data["totalChunks"] == len(data["chunks"])
        assert set(data["statistics"]) == {"totalPages", "totalParagraphs", "averageChunkSize"}
        first = data["chunks"][0]
        assert first["anchor"] == {"pageNumber": 1, "paragraphNumber": 1, "startChar": 0, "endChar": 11}
        assert first["metadata"]["wordCount"] == 2
        assert first["metadata"]["charCount"] == 11


class TestLongParagraphWindows:
    """Tests for the overlap and sentence-boundary policy."""

    def test_short_paragraph_is_single_window(self, chunker):
        assert chunker.paragraph_windows("x" * 1000) == [(0, 1000)]

    def test_windows_cover_paragraph_exactly(self, chunker):
        paragraph = long_paragraph(3700)
        windows = chunker.paragraph_windows(paragraph)

        rebuilt = paragraph[windows[0][0]:windows[0][1]]
        for (_, previous_end), (_, end) in zip(windows, windows[1:]):
            rebuilt += paragraph[previous_end:end]

        assert windows[0][0] == 0
        assert windows[-1][1] == len(paragraph)
        assert rebuilt == paragraph

    def test_windows_overlap_by_overlap_size(self, chunker):
        windows = chunker.paragraph_windows(long_paragraph(3000))

        for (start, end), (next_start, _) in zip(windows, windows[1:]):
            assert next_start == max(end - chunker.overlap_size, start + chunker.min_chunk_size)
            assert end - next_start == chunker.overlap_size

    def test_window_ends_at_sentence_boundary(self, chunker):
        paragraph = long_paragraph(3000)
        windows = chunker.paragraph_windows(paragraph)

        for _, end in windows[:-1]:
            assert paragraph[end - 2:end] == ". "

    def test_window_without_sentence_break_uses_max_size(self, chunker):
        paragraph = "x" * 2500
        windows = chunker.paragraph_windows(paragraph)

        assert windows[0] == (0, 1000)
        assert windows[1] == (900, 1900)
        assert windows[-1][1] == 2500

    def test_overlap_never_drops_below_minimum_advance(self):
        chunker = JudgmentChunker(max_chunk_size=250, min_chunk_size=200, overlap_size=100)
        windows = chunker.paragraph_windows("y" * 900)

        for (start, _), (next_start, _) in zip(windows, windows[1:]):
            assert next_start - start >= 200

    def test_chunk_text_is_stripped_window(self, chunker):
        paragraph = long_paragraph(2500)
        result = chunker.chunk_document(paragraph, "J9")

        for chunk in result.chunks:
            assert chunk.text == paragraph[chunk.anchor.start_char:chunk.anchor.end_char].strip()
            assert chunk.char_count == len(chunk.text)
            assert chunk.word_count == len(chunk.text.split())


class TestNumberingAndIds:
    """Tests for paragraph numbering, anchors and deterministic ids."""

    def test_paragraph_counter_spans_pages(self, chunker):
        pages = [
            PageContent(1, "Para one.\n\nPara two."),
            PageContent(2, "\n\nPara three.\n\n\n"),
            PageContent(3, "1. Para four.\n2. Para five."),
        ]
        result = chunker.chunk_pages(pages, "J2")

        assert [c.paragraph_number for c in result.chunks] == [1, 2, 3, 4, 5]
        assert [c.page_number for c in result.chunks] == [1, 1, 2, 3, 3]
        assert result.statistics.total_paragraphs == 5

    def test_anchors_reference_existing_paragraphs(self, chunker, scenario_pages):
        result = chunker.chunk_pages(scenario_pages, "J1")
        paragraphs = {}
        counter = 0
        for page in scenario_pages:
            for paragraph in extract_paragraphs(page.text):
                counter += 1
                paragraphs[counter] = (page.page_number, paragraph)

        numbers = [c.paragraph_number for c in result.chunks]
        assert numbers == sorted(numbers)
        for chunk in result.chunks:
            page_number, paragraph = paragraphs[chunk.paragraph_number]
            assert chunk.page_number == page_number
            assert 0 <= chunk.anchor.start_char < chunk.anchor.end_char <= len(paragraph)

    def test_rechunking_is_idempotent(self, chunker, scenario_pages):
        first = chunker.chunk_pages(scenario_pages, "J1")
        second = chunker.chunk_pages(scenario_pages, "J1")

        assert [c.chunk_id for c in first.chunks] == [c.chunk_id for c in second.chunks]
        assert first.statistics == second.statistics

    def test_running_index_in_chunk_ids(self, chunker, scenario_pages):
        result = chunker.chunk_pages(scenario_pages, "J1")
        indexes = [int(c.chunk_id.rsplit("-", 1)[1]) for c in result.chunks]
        assert indexes == list(range(len(result.chunks)))

    def test_empty_input_has_zero_average(self, chunker):
        result = chunker.chunk_pages([PageContent(1, "   \n\n  ")], "J3")

        assert result.total_chunks == 0
        assert result.statistics.average_chunk_size == 0
        assert result.statistics.total_pages == 1

    def test_chunk_document_uses_given_page(self, chunker):
        result = chunker.chunk_document("Only paragraph.", "J4", page_number=7)
        assert result.chunks[0].chunk_id == "J4-7-1-0"

    def test_invalid_sizes_rejected(self):
        with pytest.raises(ValueError):
            JudgmentChunker(max_chunk_size=100, min_chunk_size=200)
