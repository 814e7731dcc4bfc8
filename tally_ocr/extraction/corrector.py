"""Remapping of letters that OCR confuses with digits."""

import re

CONFUSION_TABLE: dict[str, str] = {
    "O": "0",
    "I": "1",
    "l": "1",
    "B": "8",
    "S": "5",
    "Z": "7",
    "G": "6",
}

_TRANSLATION = str.maketrans(CONFUSION_TABLE)
_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"\d")


def correct(text: str) -> str:
    """Return ``text`` with digit-like letters replaced by digits."""
    return text.translate(_TRANSLATION)


def is_label_token(token: str) -> bool:
    """Tell whether a raw token is a word rather than a misread number.

    Two or more letters, or letters with no digit at all, mark a label
    such as ``TURNO`` or ``TOTAL``; those are never corrected.
    """
    letters = len(_LETTER.findall(token))
    if letters >= 2:
        return True
    return letters > 0 and not _DIGIT.search(token)
