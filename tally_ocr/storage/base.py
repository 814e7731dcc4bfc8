"""Interface of the store that keeps committed production records."""

from abc import ABC, abstractmethod

from tally_ocr.commit.records import ProductionRecord


class PersistenceError(RuntimeError):
    """Raised when the store rejects or fails a request."""


class PersistenceAdapter(ABC):
    """Record store keyed by (lab, unique key).

    ``upsert`` is all-or-nothing: either every record of the batch is
    written or none is.
    """

    @abstractmethod
    def upsert(self, records: list[ProductionRecord]) -> int:
        """Insert or overwrite records, returning how many were written."""

    @abstractmethod
    def list_by_lab_and_date_range(
        self, lab_id: str, start: str | None = None, end: str | None = None
    ) -> list[ProductionRecord]:
        """Records of a lab with ``start <= date <= end`` (bounds optional)."""

    @abstractmethod
    def delete_by_date(self, lab_id: str, date: str) -> int:
        """Delete a lab's records for one day, returning the count removed."""

    def list_by_date(self, lab_id: str, date: str) -> list[ProductionRecord]:
        return self.list_by_lab_and_date_range(lab_id, date, date)
