"""Line-oriented parser that groups OCR text into dated blocks of shift rows.

The parser walks lines in reading order. A date line opens (or reopens) the
block for that date; shift lines inside an open block become rows of
integer values. Sheets whose date header is unreadable still produce a
draft block dated today so a reviewer can fix it.
"""

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from tally_ocr.ocr.tesseract_engine import OCRLine, OCRResult, RecognizedWord
from tally_ocr.session.models import Block, ShiftRow, ValueCell, new_block_id
from tally_ocr.utils.logger import get_logger
from tally_ocr.validation.dates import find_date
from tally_ocr.validation.reconciliation import (
    DETECTION_TOLERANCE,
    extract_declared_total,
)

from .corrector import correct, is_label_token

logger = get_logger(__name__)

# TURNO and its usual misreads, optionally followed by the shift number.
SHIFT_PATTERN = re.compile(
    r"\bTUR(?:NO|MO)?(?![A-Z])\s*[:.\-]?\s*(\d{1,2})?(?!\d)", re.IGNORECASE
)

GENERAL_SHIFT = "TURNO GERAL"
DETECTED_SHIFT = "TURNO DETECTADO"
FALLBACK_MIN_VALUE = 10

_TOKEN_SPLIT = re.compile(r"[\s\-]+")
_NON_DIGIT = re.compile(r"\D")


class ParserState(Enum):
    NO_BLOCK = "no_block"
    BLOCK_OPEN = "block_open"


@dataclass
class _Token:
    text: str
    word_index: int | None


@dataclass
class _RowDraft:
    values: list[int] = field(default_factory=list)
    word_indices: list[int | None] = field(default_factory=list)
    numeric_view: str = ""


@dataclass
class ParsedSheet:
    """Parser output: blocks plus the flat word list their cells refer to."""

    blocks: list[Block]
    words: list[RecognizedWord]
    used_fallback: bool = False


class BlockParser:
    """Turns OCR lines into dated blocks of shift rows.

    Args:
        detection_tolerance: Bound used to recognize a row's written total.
        fallback_min_value: Smallest value kept when no date was read.
        today: Returns the date given to the fallback block.
    """

    def __init__(
        self,
        detection_tolerance: float = DETECTION_TOLERANCE,
        fallback_min_value: int = FALLBACK_MIN_VALUE,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.detection_tolerance = detection_tolerance
        self.fallback_min_value = fallback_min_value
        self.today = today

    def parse_text(self, text: str) -> ParsedSheet:
        """Parse plain OCR text that has no word positions."""
        return self.parse([OCRResult(text=text, words=[], language="", confidence=0.0)])

    def parse(self, pages: Iterable[OCRResult]) -> ParsedSheet:
        """Parse recognized pages in order with one shared block registry.

        Args:
            pages: OCR results, one per page.

        Returns:
            The blocks found and the words their cells point into.
        """
        words: list[RecognizedWord] = []
        registry: dict[str, Block] = {}
        order: list[Block] = []
        orphan_lines: list[tuple[OCRLine, int]] = []
        state = ParserState.NO_BLOCK
        current: Block | None = None

        for line, first_word in self._iter_lines(pages, words):
            found = find_date(line.text)
            if found:
                current = registry.get(found)
                if current is None:
                    current = Block(id=new_block_id(), date=found)
                    registry[found] = current
                    order.append(current)
                    logger.debug("Opened block %s", found)
                else:
                    logger.debug("Reopened block %s", found)
                state = ParserState.BLOCK_OPEN
                continue

            match = SHIFT_PATTERN.search(line.text)
            if not match:
                logger.debug("Ignored line: %r", line.text)
                continue

            if state is ParserState.NO_BLOCK or current is None:
                orphan_lines.append((line, first_word))
                continue

            number = int(match.group(1)) if match.group(1) else None
            name = f"TURNO {number}" if number is not None else GENERAL_SHIFT
            draft = self._read_values(line, first_word, shift_number=number)
            self._add_row(current, name, draft)

        if not registry and orphan_lines:
            block = self._fallback_block(orphan_lines)
            return ParsedSheet(blocks=[block], words=words, used_fallback=True)

        blocks = [b for b in order if b.shifts]
        if not blocks and order:
            blocks = [order[-1]]

        logger.info(
            "Parsed %d blocks with %d shift rows",
            len(blocks),
            sum(len(b.shifts) for b in blocks),
        )
        return ParsedSheet(blocks=blocks, words=words)

    @staticmethod
    def _iter_lines(
        pages: Iterable[OCRResult], words: list[RecognizedWord]
    ) -> Iterator[tuple[OCRLine, int]]:
        """Yield each line with the flat index of its first word."""
        for page in pages:
            for line in page.lines():
                first = len(words)
                words.extend(line.words)
                yield line, first

    @staticmethod
    def _tokens(line: OCRLine, first_word: int) -> list[_Token]:
        if not line.words:
            return [_Token(t, None) for t in _TOKEN_SPLIT.split(line.text) if t]
        return [
            _Token(piece, first_word + offset)
            for offset, word in enumerate(line.words)
            for piece in _TOKEN_SPLIT.split(word.text)
            if piece
        ]

    def _read_values(
        self,
        line: OCRLine,
        first_word: int,
        shift_number: int | None = None,
        min_value: int = 0,
    ) -> _RowDraft:
        draft = _RowDraft()
        view: list[str] = []
        first_seen = False

        for token in self._tokens(line, first_word):
            if is_label_token(token.text):
                view.append(token.text)
                continue

            digits = _NON_DIGIT.sub("", correct(token.text))
            if not digits:
                continue
            view.append(digits)
            value = int(digits)

            if not first_seen:
                first_seen = True
                if shift_number is not None and value == shift_number:
                    logger.debug("Dropped shift number %d read as a value", value)
                    continue
            if value < min_value:
                continue

            draft.values.append(value)
            draft.word_indices.append(token.word_index)

        draft.numeric_view = " ".join(view)
        return draft

    def _add_row(self, block: Block, name: str, draft: _RowDraft) -> None:
        values, indices = draft.values, draft.word_indices
        row = ShiftRow(name=name)

        total = extract_declared_total(
            values, draft.numeric_view, self.detection_tolerance
        )
        if total is not None:
            row.declared_total = total
            row.total_word_index = indices[-1]
            values, indices = values[:-1], indices[:-1]

        row.values = [ValueCell(str(v), i) for v, i in zip(values, indices)]

        texts = [c.raw_text for c in row.values]
        if any(
            s.name == row.name and [c.raw_text for c in s.values] == texts
            for s in block.shifts
        ):
            logger.debug("Skipped duplicate row %s in block %s", name, block.date)
            return

        block.shifts.append(row)
        logger.debug("Row %s: %s (total %s)", name, texts, row.declared_total)

    def _fallback_block(self, lines: list[tuple[OCRLine, int]]) -> Block:
        """Build the single draft block used when no date was recognized."""
        block = Block(id=new_block_id(), date=self.today().isoformat())
        for line, first_word in lines:
            count = len(block.shifts)
            name = DETECTED_SHIFT if count == 0 else f"{DETECTED_SHIFT} {count + 1}"
            draft = self._read_values(
                line, first_word, min_value=self.fallback_min_value
            )
            self._add_row(block, name, draft)

        logger.warning(
            "No date found on the sheet; drafted %d rows under %s",
            len(block.shifts),
            block.date,
        )
        return block
