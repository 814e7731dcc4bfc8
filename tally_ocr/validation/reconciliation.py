"""Cross-checks between a shift row's values and its handwritten total.

Detection at parse time is lenient so usable totals are not thrown away;
the re-check while editing is stricter so real transcription errors show.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from tally_ocr.commit.records import parse_quantity
from tally_ocr.session.models import Block, ShiftRow
from tally_ocr.utils.logger import get_logger

logger = get_logger(__name__)

DETECTION_TOLERANCE = 5.0
DISPLAY_TOLERANCE = 2.0

# A group of two or more digits closing the line.
_TRAILING_GROUP = re.compile(r"(\d{2,})\s*$")


@dataclass
class Discrepancy:
    """A shift row whose values no longer add up to its declared total."""

    block_id: str
    shift_index: int
    shift_name: str
    live_sum: float
    declared_total: float

    @property
    def difference(self) -> float:
        return self.live_sum - self.declared_total


def extract_declared_total(
    values: list[int],
    line_text: str,
    tolerance: float = DETECTION_TOLERANCE,
) -> int | None:
    """Decide whether the last value of a row is its written total.

    The last value qualifies when it is the multi-digit group that ends
    the line and the other values sum to within ``tolerance`` of it.

    Args:
        values: Integers parsed from the line, in order.
        line_text: The line with numeric tokens already reduced to digits.
        tolerance: Exclusive bound on ``|sum - total|``.

    Returns:
        The declared total, or ``None`` if the last value is a quantity.
    """
    if len(values) < 2:
        return None

    match = _TRAILING_GROUP.search(line_text)
    if not match or int(match.group(1)) != values[-1]:
        return None

    candidate = values[-1]
    others = sum(values[:-1])
    if abs(others - candidate) < tolerance:
        logger.debug("Declared total %d matches sum %d", candidate, others)
        return candidate

    logger.debug("Trailing %d kept as a value (sum of others %d)", candidate, others)
    return None


def live_sum(row: ShiftRow) -> float:
    """Sum a row's current cells; unparseable cells count as zero."""
    return sum(parse_quantity(cell.raw_text) or 0.0 for cell in row.values)


def check_row(
    row: ShiftRow,
    block_id: str = "",
    shift_index: int = 0,
    tolerance: float = DISPLAY_TOLERANCE,
) -> Discrepancy | None:
    """Flag a row whose live sum strays more than ``tolerance`` from its total."""
    if row.declared_total is None:
        return None

    total = live_sum(row)
    if abs(total - row.declared_total) > tolerance:
        return Discrepancy(
            block_id=block_id,
            shift_index=shift_index,
            shift_name=row.name,
            live_sum=total,
            declared_total=row.declared_total,
        )
    return None


def find_discrepancies(
    blocks: Iterable[Block], tolerance: float = DISPLAY_TOLERANCE
) -> list[Discrepancy]:
    """Re-check every row that carries a declared total.

    Args:
        blocks: Blocks of a correction session.
        tolerance: Allowed gap between live sum and declared total.

    Returns:
        One entry per mismatching row, in block and row order.
    """
    found: list[Discrepancy] = []
    for block in blocks:
        for index, row in enumerate(block.shifts):
            discrepancy = check_row(row, block.id, index, tolerance)
            if discrepancy:
                found.append(discrepancy)

    if found:
        logger.info("%d shift rows disagree with their declared totals", len(found))
    return found
