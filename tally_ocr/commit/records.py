"""Persisted production records and their wire format.

Quantities are written on the sheets in Brazilian notation: dots group
thousands and a comma marks decimals.
"""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

MACHINE_LABEL_PREFIX = "Line/Machine"

_MACHINE_NUMBER = re.compile(r"(\d+)\s*$")
_PLAIN_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


class RecordSource(StrEnum):
    """Where a production record came from."""

    OCR = "ocr_multi_day"
    MANUAL_EDIT = "manual_edit"
    SPREADSHEET = "spreadsheet_upload"


@dataclass(frozen=True)
class ProductionRecord:
    """Quantity produced by one machine during one shift of one day."""

    lab_id: str
    unique_key: str
    date: str
    shift: str
    machine_label: str
    quantity: float
    source: RecordSource

    def to_wire(self) -> dict[str, Any]:
        """Return the record in the storage/API field naming."""
        return {
            "lab_id": self.lab_id,
            "identificador_unico": self.unique_key,
            "data_producao": self.date,
            "turno": self.shift,
            "produto": self.machine_label,
            "peso": self.quantity,
            "metadata": {"source": self.source.value},
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "ProductionRecord":
        metadata = data.get("metadata") or {}
        return cls(
            lab_id=data["lab_id"],
            unique_key=data["identificador_unico"],
            date=data["data_producao"],
            shift=data["turno"],
            machine_label=data["produto"],
            quantity=float(data["peso"]),
            source=RecordSource(metadata.get("source", RecordSource.OCR.value)),
        )


def machine_label(column: int) -> str:
    """Label for the machine in 1-based sheet column ``column``."""
    return f"{MACHINE_LABEL_PREFIX} {column}"


def machine_number(label: str) -> int | None:
    """Recover the column number from a machine label, if it ends in one."""
    match = _MACHINE_NUMBER.search(label or "")
    return int(match.group(1)) if match else None


def parse_quantity(text: str | None) -> float | None:
    """Parse a cell's text as a quantity.

    Dots are dropped as thousands separators and a comma is read as the
    decimal mark, so ``"1.234,5"`` gives ``1234.5``.

    Args:
        text: Raw cell text.

    Returns:
        The parsed number, or ``None`` when the text is not numeric.
    """
    if text is None:
        return None
    clean = re.sub(r"\s+", "", text).replace(".", "").replace(",", ".")
    if not _PLAIN_NUMBER.fullmatch(clean):
        return None
    return float(clean)


def format_quantity(value: float) -> str:
    """Render a quantity in the notation ``parse_quantity`` reads back."""
    value = float(value)
    sign = "-" if value < 0 else ""
    value = abs(value)

    if value.is_integer():
        integer, fraction = int(value), ""
    else:
        integer_text, _, fraction = f"{value:.10f}".rstrip("0").partition(".")
        integer = int(integer_text)

    grouped = f"{integer:,}".replace(",", ".")
    return f"{sign}{grouped},{fraction}" if fraction else f"{sign}{grouped}"
