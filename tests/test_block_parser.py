"""Tests for grouping OCR lines into dated blocks of shift rows."""

from tally_ocr.extraction.block_parser import (
    DETECTED_SHIFT,
    GENERAL_SHIFT,
    BlockParser,
    ParsedSheet,
)
from tally_ocr.ocr.tesseract_engine import BoundingBox, OCRResult, RecognizedWord


def _texts(row) -> list[str]:
    return [cell.raw_text for cell in row.values]


def _line_words(texts: list[str], line: int, page: int = 1) -> list[RecognizedWord]:
    return [
        RecognizedWord(
            text=text,
            bbox=BoundingBox(20 * i, 30 * line, 20 * i + 15, 30 * line + 20),
            confidence=90.0,
            page=page,
            line_key=(1, 1, line),
        )
        for i, text in enumerate(texts)
    ]


class TestBlocks:
    """Tests for block creation from date lines."""

    def test_two_day_sheet(self, parser: BlockParser, sheet_text: str) -> None:
        parsed = parser.parse_text(sheet_text)

        assert isinstance(parsed, ParsedSheet)
        assert not parsed.used_fallback
        assert [b.date for b in parsed.blocks] == ["2025-03-05", "2025-03-06"]

        first = parsed.blocks[0]
        assert [s.name for s in first.shifts] == ["TURNO 1", "TURNO 2"]
        assert _texts(first.shifts[0]) == ["10", "12", "8"]
        assert first.shifts[0].declared_total == 30
        assert _texts(first.shifts[1]) == ["15", "20", "25"]
        assert first.shifts[1].declared_total is None

        assert _texts(parsed.blocks[1].shifts[0]) == ["40", "50"]

    def test_dot_separated_date(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("5.3.2025\nTURNO 1 40 50")
        assert parsed.blocks[0].date == "2025-03-05"

    def test_repeated_date_reuses_block(self, parser: BlockParser) -> None:
        text = (
            "01/03/2025\nTURNO 1 10 20\n"
            "02/03/2025\nTURNO 1 50 60\n"
            "01/03/2025\nTURNO 2 30 40\n"
        )
        parsed = parser.parse_text(text)

        assert [b.date for b in parsed.blocks] == ["2025-03-01", "2025-03-02"]
        assert [s.name for s in parsed.blocks[0].shifts] == ["TURNO 1", "TURNO 2"]
        assert len({b.id for b in parsed.blocks}) == 2

    def test_impossible_date_ignored(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\n32/13/2025\nTURNO 1 40 50")
        assert len(parsed.blocks) == 1
        assert parsed.blocks[0].date == "2025-03-01"
        assert len(parsed.blocks[0].shifts) == 1

    def test_date_line_adds_no_row(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("05/03/2025 TURNO 1 SB 40\nTURNO 2 10 20")

        assert [b.date for b in parsed.blocks] == ["2025-03-05"]
        shifts = parsed.blocks[0].shifts
        assert [s.name for s in shifts] == ["TURNO 2"]
        assert _texts(shifts[0]) == ["10", "20"]

    def test_empty_blocks_dropped(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\n02/03/2025\nTURNO 1 40 50\n03/03/2025")
        assert [b.date for b in parsed.blocks] == ["2025-03-02"]

    def test_last_dated_block_kept_when_all_empty(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nsem producao\n02/03/2025")
        assert [b.date for b in parsed.blocks] == ["2025-03-02"]
        assert parsed.blocks[0].shifts == []

    def test_empty_text(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("")
        assert parsed.blocks == []
        assert not parsed.used_fallback

    def test_pages_share_registry(self, parser: BlockParser) -> None:
        pages = [
            OCRResult("01/03/2025\nTURNO 1 10 20", [], "por", 0.0),
            OCRResult("01/03/2025\nTURNO 2 30 40", [], "por", 0.0),
        ]
        parsed = parser.parse(pages)
        assert len(parsed.blocks) == 1
        assert [s.name for s in parsed.blocks[0].shifts] == ["TURNO 1", "TURNO 2"]


class TestShiftRows:
    """Tests for reading values from shift lines."""

    def test_shift_number_not_taken_as_value(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO 2 25 40")
        row = parsed.blocks[0].shifts[0]
        assert row.name == "TURNO 2"
        assert _texts(row) == ["25", "40"]

    def test_glued_shift_number(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO1 1 40")
        row = parsed.blocks[0].shifts[0]
        assert row.name == "TURNO 1"
        assert _texts(row) == ["40"]

    def test_unnumbered_shift_is_general(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO: 120 130")
        row = parsed.blocks[0].shifts[0]
        assert row.name == GENERAL_SHIFT
        assert _texts(row) == ["120", "130"]

    def test_misread_keyword(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURMO 3 40 50")
        assert parsed.blocks[0].shifts[0].name == "TURNO 3"

    def test_confusable_letters_corrected(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO 1 1O 2S")
        assert _texts(parsed.blocks[0].shifts[0]) == ["10", "25"]

    def test_hyphen_separated_values(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO 1 10-20-35")
        assert _texts(parsed.blocks[0].shifts[0]) == ["10", "20", "35"]

    def test_trailing_value_far_from_sum_kept(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO 1 10 12 50")
        row = parsed.blocks[0].shifts[0]
        assert _texts(row) == ["10", "12", "50"]
        assert row.declared_total is None

    def test_duplicate_row_skipped(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO 1 40 50\nTURNO 1 40 50")
        assert len(parsed.blocks[0].shifts) == 1

    def test_same_shift_with_different_values_kept(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO 1 40 50\nTURNO 1 60 70")
        assert len(parsed.blocks[0].shifts) == 2

    def test_shift_without_values(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("01/03/2025\nTURNO 1")
        assert parsed.blocks[0].shifts[0].values == []


class TestWordLinks:
    """Tests for linking cells back to recognized words."""

    def test_cells_point_at_source_words(self, parser: BlockParser) -> None:
        words = _line_words(["01/03/2025"], 1) + _line_words(
            ["TURNO", "1", "10", "12", "8", "30"], 2
        )
        page = OCRResult(text="", words=words, language="por", confidence=90.0)

        parsed = parser.parse([page])
        row = parsed.blocks[0].shifts[0]

        assert parsed.words == words
        assert [c.word_index for c in row.values] == [3, 4, 5]
        assert row.total_word_index == 6
        assert parsed.words[row.values[0].word_index].text == "10"

    def test_word_indices_continue_across_pages(self, parser: BlockParser) -> None:
        first = _line_words(["01/03/2025"], 1) + _line_words(["TURNO", "1", "40", "50"], 2)
        second = _line_words(["TURNO", "2", "60", "70"], 1, page=2)
        pages = [
            OCRResult("", first, "por", 90.0),
            OCRResult("", second, "por", 90.0),
        ]

        parsed = parser.parse(pages)
        row = parsed.blocks[0].shifts[1]

        assert len(parsed.words) == 9
        assert [c.word_index for c in row.values] == [7, 8]
        assert parsed.words[7].page == 2


class TestFallback:
    """Tests for sheets whose date header was not recognized."""

    def test_fallback_block_dated_today(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("TURNO 5 3 120 80\nTURNO 7 20")

        assert parsed.used_fallback
        assert len(parsed.blocks) == 1
        block = parsed.blocks[0]
        assert block.date == "2025-03-10"
        assert [s.name for s in block.shifts] == [DETECTED_SHIFT, f"{DETECTED_SHIFT} 2"]
        assert _texts(block.shifts[0]) == ["120", "80"]
        assert _texts(block.shifts[1]) == ["20"]

    def test_custom_minimum(self) -> None:
        parser = BlockParser(fallback_min_value=100)
        parsed = parser.parse_text("TURNO 50 150")
        assert _texts(parsed.blocks[0].shifts[0]) == ["150"]

    def test_no_fallback_once_a_date_was_seen(self, parser: BlockParser) -> None:
        parsed = parser.parse_text("TURNO 1 40 50\n01/03/2025\nTURNO 2 60 70")
        assert not parsed.used_fallback
        assert [s.name for s in parsed.blocks[0].shifts] == ["TURNO 2"]
