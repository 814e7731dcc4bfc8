"""Builds a correction session from records that were already committed."""

from collections import defaultdict
from collections.abc import Iterable

from tally_ocr.commit.records import (
    ProductionRecord,
    RecordSource,
    format_quantity,
    machine_number,
)
from tally_ocr.utils.logger import get_logger

from .models import Block, CorrectionSession, ShiftRow, ValueCell, new_block_id

logger = get_logger(__name__)


def load_existing(
    records: Iterable[ProductionRecord], date: str, lab_id: str = ""
) -> CorrectionSession:
    """Load one day's records into the same shape the OCR path produces.

    Records are grouped into one row per shift (shift names sorted) and each
    value is placed at the column its machine label names, so committing the
    session unchanged reproduces the same identifiers. Columns with no record
    become empty cells, which the commit skips.

    Args:
        records: Persisted records; those for other dates are ignored.
        date: ISO date to load.
        lab_id: Lab the session will commit to.

    Returns:
        A session with a single block and no source image.
    """
    by_shift: dict[str, dict[int, ProductionRecord]] = defaultdict(dict)
    unplaced: dict[str, list[ProductionRecord]] = defaultdict(list)

    for record in records:
        if record.date != date:
            continue
        column = machine_number(record.machine_label)
        if column is None or column < 1:
            unplaced[record.shift].append(record)
        else:
            by_shift[record.shift][column] = record

    block = Block(id=new_block_id(), date=date)
    for shift in sorted(set(by_shift) | set(unplaced)):
        placed = by_shift.get(shift, {})
        width = max(placed, default=0)
        cells = [ValueCell("") for _ in range(width)]
        for column, record in placed.items():
            cells[column - 1] = ValueCell(format_quantity(record.quantity))
        # Labels without a column number keep their label order after the rest.
        for record in sorted(unplaced.get(shift, []), key=lambda r: r.machine_label):
            cells.append(ValueCell(format_quantity(record.quantity)))
        block.shifts.append(ShiftRow(name=shift, values=cells))

    logger.info(
        "Loaded %d shift rows for %s into an edit session",
        len(block.shifts),
        date,
    )
    return CorrectionSession(
        lab_id=lab_id,
        source=RecordSource.MANUAL_EDIT,
        blocks=[block],
    )
