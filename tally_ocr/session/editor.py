"""Edits a reviewer makes to a correction session.

Every function takes the session it changes; none of them touches
storage, so a session can be edited and thrown away freely.
"""

from dataclasses import dataclass

from tally_ocr.utils.logger import get_logger
from tally_ocr.validation.dates import normalize_date
from tally_ocr.validation.reconciliation import (
    DISPLAY_TOLERANCE,
    Discrepancy,
    find_discrepancies,
)

from .geometry import DisplayBox, map_box_to_display
from .models import Block, CorrectionSession, ShiftRow, ValueCell, new_block_id

logger = get_logger(__name__)


class SessionEditError(LookupError):
    """Raised when an edit names a block, row or cell that does not exist."""


@dataclass
class ValueRegion:
    """Where a cell's source word sits on the displayed image."""

    block_id: str
    shift_index: int
    value_index: int
    raw_text: str
    box: DisplayBox


def get_block(session: CorrectionSession, block_id: str) -> Block:
    block = session.find_block(block_id)
    if block is None:
        raise SessionEditError(f"Unknown block: {block_id}")
    return block


def get_shift(session: CorrectionSession, block_id: str, shift_index: int) -> ShiftRow:
    block = get_block(session, block_id)
    if not 0 <= shift_index < len(block.shifts):
        raise SessionEditError(f"Block {block_id} has no shift row {shift_index}")
    return block.shifts[shift_index]


def _check_value_index(row: ShiftRow, value_index: int) -> None:
    if not 0 <= value_index < len(row.values):
        raise SessionEditError(f"Shift {row.name} has no value {value_index}")


def _clean_name(name: str) -> str:
    cleaned = " ".join(name.split()).upper()
    if not cleaned:
        raise ValueError("Shift name cannot be blank")
    return cleaned


def set_block_date(session: CorrectionSession, block_id: str, value: str) -> Block:
    """Change a block's date; DD/MM/YYYY input is stored as ISO."""
    block = get_block(session, block_id)
    block.date = normalize_date(value)
    logger.debug("Block %s date set to %r", block_id, block.date)
    return block


def add_block(session: CorrectionSession, date: str = "") -> Block:
    """Append an empty block for a day the parser missed."""
    block = Block(id=new_block_id(), date=normalize_date(date) if date else "")
    session.blocks.append(block)
    return block


def remove_block(session: CorrectionSession, block_id: str) -> None:
    session.blocks.remove(get_block(session, block_id))


def add_shift(session: CorrectionSession, block_id: str, name: str) -> ShiftRow:
    row = ShiftRow(name=_clean_name(name))
    get_block(session, block_id).shifts.append(row)
    return row


def rename_shift(
    session: CorrectionSession, block_id: str, shift_index: int, name: str
) -> ShiftRow:
    row = get_shift(session, block_id, shift_index)
    row.name = _clean_name(name)
    return row


def remove_shift(session: CorrectionSession, block_id: str, shift_index: int) -> None:
    get_shift(session, block_id, shift_index)
    del get_block(session, block_id).shifts[shift_index]


def add_value(
    session: CorrectionSession, block_id: str, shift_index: int, raw_text: str = ""
) -> ValueCell:
    """Append a cell at the end of a shift row."""
    cell = ValueCell(raw_text=raw_text.strip())
    get_shift(session, block_id, shift_index).values.append(cell)
    return cell


def edit_value(
    session: CorrectionSession,
    block_id: str,
    shift_index: int,
    value_index: int,
    raw_text: str,
) -> ValueCell:
    """Replace a cell's text; its link to the source word is kept."""
    row = get_shift(session, block_id, shift_index)
    _check_value_index(row, value_index)
    cell = row.values[value_index]
    cell.raw_text = raw_text.strip()
    return cell


def remove_value(
    session: CorrectionSession, block_id: str, shift_index: int, value_index: int
) -> None:
    row = get_shift(session, block_id, shift_index)
    _check_value_index(row, value_index)
    del row.values[value_index]


def set_declared_total(
    session: CorrectionSession,
    block_id: str,
    shift_index: int,
    total: float | None,
) -> ShiftRow:
    """Set or clear (``None``) the handwritten total of a row."""
    row = get_shift(session, block_id, shift_index)
    row.declared_total = total
    if total is None:
        row.total_word_index = None
    return row


def discrepancies(
    session: CorrectionSession, tolerance: float = DISPLAY_TOLERANCE
) -> list[Discrepancy]:
    """Current rows whose values disagree with their declared totals."""
    return find_discrepancies(session.blocks, tolerance)


def value_regions(
    session: CorrectionSession,
    display_size: tuple[float, float],
    page: int = 1,
) -> list[ValueRegion]:
    """List the clickable regions of every correlated cell on a page.

    Args:
        session: The session under review.
        display_size: (width, height) the page image is shown at.
        page: 1-based page number.

    Returns:
        A region per cell whose source word lies on ``page``. Cells typed
        in by the reviewer or loaded from storage have no region.

    Raises:
        SessionEditError: If the session has no such page.
    """
    if not 1 <= page <= len(session.pages):
        raise SessionEditError(f"Session has no page {page}")
    info = session.pages[page - 1]

    regions: list[ValueRegion] = []
    for block in session.blocks:
        for shift_index, row in enumerate(block.shifts):
            for value_index, cell in enumerate(row.values):
                word = session.word(cell.word_index)
                if word is None or word.page != page:
                    continue
                regions.append(
                    ValueRegion(
                        block_id=block.id,
                        shift_index=shift_index,
                        value_index=value_index,
                        raw_text=cell.raw_text,
                        box=map_box_to_display(
                            word.bbox,
                            (info.width, info.height),
                            display_size,
                            session.preprocess_scale,
                        ),
                    )
                )
    return regions
