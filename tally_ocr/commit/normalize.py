"""Flattens a confirmed correction session into production records.

Identifiers depend only on date, shift label and column, so committing the
same sheet again overwrites the same rows instead of adding new ones.
"""

from dataclasses import dataclass

from tally_ocr.session.models import Block, CorrectionSession
from tally_ocr.utils.logger import get_logger
from tally_ocr.validation.dates import is_valid_iso_date

from .records import ProductionRecord, machine_label, parse_quantity

logger = get_logger(__name__)

# Rows named like this are sheet-level sums kept for reference only.
_REFERENCE_ROW_MARKER = "TOTAL"


class CommitError(Exception):
    """Base class for commits refused before anything is written."""


@dataclass(frozen=True)
class InvalidBlock:
    """A block that cannot be committed, by 1-based position and id."""

    position: int
    block_id: str
    date: str


class InvalidBlockDateError(CommitError):
    """Raised when any block has a blank or invalid date."""

    def __init__(self, blocks: list[InvalidBlock]) -> None:
        self.blocks = blocks
        positions = ", ".join(str(b.position) for b in blocks)
        super().__init__(f"Blocks without a valid date: {positions}")


class EmptyCommitError(CommitError):
    """Raised when a session holds no committable quantity."""


def shift_slug(name: str) -> str:
    return "".join(name.split())


def unique_key(date: str, shift: str, column_index: int) -> str:
    """Stable identifier for a quantity; ``column_index`` is 0-based."""
    return f"{date}-{shift_slug(shift)}-COL{column_index + 1}"


def invalid_blocks(session: CorrectionSession) -> list[InvalidBlock]:
    """List the blocks whose date is blank or not a real ISO date."""
    return [
        InvalidBlock(position, block.id, block.date)
        for position, block in enumerate(session.blocks, start=1)
        if not is_valid_iso_date(block.date)
    ]


def _block_records(block: Block, lab_id: str, session: CorrectionSession):
    for row in block.shifts:
        if _REFERENCE_ROW_MARKER in row.name.upper():
            continue
        for index, cell in enumerate(row.values):
            quantity = parse_quantity(cell.raw_text)
            if quantity is None or quantity <= 0:
                continue
            yield ProductionRecord(
                lab_id=lab_id,
                unique_key=unique_key(block.date, row.name, index),
                date=block.date,
                shift=row.name,
                machine_label=machine_label(index + 1),
                quantity=quantity,
                source=session.source,
            )


def normalize_session(
    session: CorrectionSession, lab_id: str | None = None
) -> list[ProductionRecord]:
    """Turn every committable cell of a session into a record.

    Cells that are empty, unparseable or not positive are skipped.

    Args:
        session: The confirmed session.
        lab_id: Lab owning the records; defaults to the session's lab.

    Returns:
        Records in block, row and column order.

    Raises:
        InvalidBlockDateError: If any block lacks a valid date. No records
            are produced in that case.
        EmptyCommitError: If no cell holds a usable quantity.
    """
    bad = invalid_blocks(session)
    if bad:
        logger.warning("Commit rejected, blocks without date: %s", bad)
        raise InvalidBlockDateError(bad)

    lab = lab_id if lab_id is not None else session.lab_id
    records = [
        record
        for block in session.blocks
        for record in _block_records(block, lab, session)
    ]
    if not records:
        raise EmptyCommitError("No valid quantities to commit")

    logger.info(
        "Normalized session %s into %d records across %d blocks",
        session.id,
        len(records),
        len(session.blocks),
    )
    return records
