"""Process-local record store, used in tests and when no database is set."""

import threading

from tally_ocr.commit.records import ProductionRecord
from tally_ocr.utils.logger import get_logger

from .base import PersistenceAdapter, PersistenceError

logger = get_logger(__name__)


class InMemoryAdapter(PersistenceAdapter):
    """Keeps records in a dict keyed by (lab_id, unique_key)."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], ProductionRecord] = {}
        self._lock = threading.Lock()

    def upsert(self, records: list[ProductionRecord]) -> int:
        for record in records:
            if not record.lab_id or not record.unique_key:
                raise PersistenceError(
                    f"Record is missing lab or key: {record.unique_key!r}"
                )
        with self._lock:
            for record in records:
                self._records[(record.lab_id, record.unique_key)] = record
        logger.info("Upserted %d records in memory", len(records))
        return len(records)

    def list_by_lab_and_date_range(
        self, lab_id: str, start: str | None = None, end: str | None = None
    ) -> list[ProductionRecord]:
        with self._lock:
            found = [
                r
                for (lab, _), r in self._records.items()
                if lab == lab_id
                and (start is None or r.date >= start)
                and (end is None or r.date <= end)
            ]
        return sorted(found, key=lambda r: (r.date, r.unique_key))

    def delete_by_date(self, lab_id: str, date: str) -> int:
        with self._lock:
            keys = [
                k for k, r in self._records.items() if k[0] == lab_id and r.date == date
            ]
            for key in keys:
                del self._records[key]
        logger.info("Deleted %d records of %s for lab %s", len(keys), date, lab_id)
        return len(keys)
