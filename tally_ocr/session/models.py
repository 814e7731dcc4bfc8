"""Editable, serializable representation of a sheet under review.

Cells point at their source words by index into ``CorrectionSession.words``
so the whole session can round-trip through JSON.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from tally_ocr.commit.records import RecordSource
from tally_ocr.ocr.tesseract_engine import BoundingBox, RecognizedWord


def new_block_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass
class ValueCell:
    """A single quantity as text, optionally linked to its source word."""

    raw_text: str
    word_index: int | None = None


@dataclass
class ShiftRow:
    """One shift's quantities in column order plus its written total."""

    name: str
    values: list[ValueCell] = field(default_factory=list)
    declared_total: float | None = None
    total_word_index: int | None = None


@dataclass
class Block:
    """The shift rows recorded under one date of the sheet."""

    id: str
    date: str = ""
    shifts: list[ShiftRow] = field(default_factory=list)


@dataclass
class PageInfo:
    """Pixel size of an original page, before preprocessing."""

    width: int
    height: int


@dataclass
class CorrectionSession:
    """Everything a reviewer edits between recognition and commit."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    lab_id: str = ""
    source: RecordSource = RecordSource.OCR
    blocks: list[Block] = field(default_factory=list)
    words: list[RecognizedWord] = field(default_factory=list)
    pages: list[PageInfo] = field(default_factory=list)
    preprocess_scale: float = 2.0
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def find_block(self, block_id: str) -> Block | None:
        return next((b for b in self.blocks if b.id == block_id), None)

    def word(self, index: int | None) -> RecognizedWord | None:
        if index is None or not 0 <= index < len(self.words):
            return None
        return self.words[index]

    def to_dict(self) -> dict[str, Any]:
        """Convert the session to JSON-compatible primitives."""
        return {
            "id": self.id,
            "lab_id": self.lab_id,
            "source": self.source.value,
            "created_at": self.created_at,
            "preprocess_scale": self.preprocess_scale,
            "pages": [{"width": p.width, "height": p.height} for p in self.pages],
            "words": [_word_to_dict(w) for w in self.words],
            "blocks": [
                {
                    "id": b.id,
                    "date": b.date,
                    "shifts": [
                        {
                            "name": s.name,
                            "declared_total": s.declared_total,
                            "total_word_index": s.total_word_index,
                            "values": [
                                {"raw_text": v.raw_text, "word_index": v.word_index}
                                for v in s.values
                            ],
                        }
                        for s in b.shifts
                    ],
                }
                for b in self.blocks
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CorrectionSession":
        """Rebuild a session produced by ``to_dict``."""
        blocks = [
            Block(
                id=b.get("id") or new_block_id(),
                date=b.get("date", ""),
                shifts=[
                    ShiftRow(
                        name=s["name"],
                        declared_total=s.get("declared_total"),
                        total_word_index=s.get("total_word_index"),
                        values=[
                            ValueCell(v["raw_text"], v.get("word_index"))
                            for v in s.get("values", [])
                        ],
                    )
                    for s in b.get("shifts", [])
                ],
            )
            for b in data.get("blocks", [])
        ]
        session = cls(
            lab_id=data.get("lab_id", ""),
            source=RecordSource(data.get("source", RecordSource.OCR.value)),
            blocks=blocks,
            words=[_word_from_dict(w) for w in data.get("words", [])],
            pages=[PageInfo(p["width"], p["height"]) for p in data.get("pages", [])],
            preprocess_scale=data.get("preprocess_scale", 2.0),
        )
        if data.get("id"):
            session.id = data["id"]
        if data.get("created_at"):
            session.created_at = data["created_at"]
        return session


def _word_to_dict(word: RecognizedWord) -> dict[str, Any]:
    return {
        "text": word.text,
        "x0": word.bbox.x0,
        "y0": word.bbox.y0,
        "x1": word.bbox.x1,
        "y1": word.bbox.y1,
        "confidence": word.confidence,
        "page": word.page,
    }


def _word_from_dict(data: dict[str, Any]) -> RecognizedWord:
    return RecognizedWord(
        text=data["text"],
        bbox=BoundingBox(data["x0"], data["y0"], data["x1"], data["y1"]),
        confidence=data.get("confidence", 0.0),
        page=data.get("page", 1),
    )
