"""Date recognition and normalization for sheet headers and block dates."""

import re
from datetime import date, datetime

from tally_ocr.utils.logger import get_logger

logger = get_logger(__name__)

# Day, month, four-digit year with slash or dot separators.
DATE_PATTERN = re.compile(r"\b(\d{1,2})[/.](\d{1,2})[/.](\d{4})\b")

ISO_FORMAT = "%Y-%m-%d"


def find_date(text: str) -> str | None:
    """Find the first real calendar date in a line of text.

    Args:
        text: A line of OCR text.

    Returns:
        The date in ISO ``YYYY-MM-DD`` form, or ``None`` if the line holds
        no day/month/year group naming an existing day.
    """
    for match in DATE_PATTERN.finditer(text):
        day, month, year = (int(g) for g in match.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            logger.debug("Ignoring impossible date %s", match.group(0))
    return None


def is_valid_iso_date(value: str | None) -> bool:
    """Check that a value is a real date written as ``YYYY-MM-DD``."""
    if not value:
        return False
    try:
        datetime.strptime(value, ISO_FORMAT)
    except ValueError:
        return False
    return len(value) == 10


def normalize_date(value: str) -> str:
    """Normalize user-entered dates to ISO form where possible.

    ISO dates and ``DD/MM/YYYY`` / ``DD.MM.YYYY`` are accepted. Anything
    else is returned stripped but otherwise unchanged, so the commit check
    can report it.
    """
    value = value.strip()
    if is_valid_iso_date(value):
        return value
    match = DATE_PATTERN.fullmatch(value)
    if match:
        found = find_date(value)
        if found:
            return found
    return value
