"""Coordinates recognition, review sessions and commits for each reviewer.

A reviewer has at most one active session and one OCR run at a time: a
second image submitted while the first is being recognized waits for it.
"""

import threading
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from tally_ocr.commit.normalize import normalize_session
from tally_ocr.commit.records import ProductionRecord, RecordSource
from tally_ocr.extraction.block_parser import BlockParser
from tally_ocr.ocr.document_processor import DocumentProcessor
from tally_ocr.session.loader import load_existing
from tally_ocr.session.models import CorrectionSession, PageInfo
from tally_ocr.storage.base import PersistenceAdapter
from tally_ocr.storage.memory import InMemoryAdapter
from tally_ocr.storage.sqlite_store import SQLiteAdapter
from tally_ocr.utils.config import AppConfig, StorageConfig
from tally_ocr.utils.logger import get_logger
from tally_ocr.validation.reconciliation import Discrepancy, find_discrepancies

logger = get_logger(__name__)


class SessionNotFoundError(LookupError):
    """Raised when a reviewer has no active session."""


class RecordsNotFoundError(LookupError):
    """Raised when there is nothing stored for the requested day."""


@dataclass
class CommitResult:
    """Outcome of a successful commit."""

    session_id: str
    records: list[ProductionRecord]

    @property
    def count(self) -> int:
        return len(self.records)


def create_adapter(config: StorageConfig) -> PersistenceAdapter:
    """Build the record store named in the configuration."""
    if config.backend == "memory":
        return InMemoryAdapter()
    if config.backend == "sqlite":
        return SQLiteAdapter(Path(config.database_path))
    raise ValueError(f"Unsupported storage backend: {config.backend}")


class ReviewService:
    """Runs the digitization pipeline and holds each reviewer's session.

    Args:
        config: Application configuration.
        processor: Image loading and OCR; built from ``config`` if omitted.
        adapter: Record store; built from ``config.storage`` if omitted.
        parser: Block parser; built from ``config.parsing`` if omitted.
    """

    def __init__(
        self,
        config: AppConfig,
        processor: DocumentProcessor | None = None,
        adapter: PersistenceAdapter | None = None,
        parser: BlockParser | None = None,
    ) -> None:
        self.config = config
        self.processor = processor or DocumentProcessor(config)
        self.adapter = adapter or create_adapter(config.storage)
        self.parser = parser or BlockParser(
            detection_tolerance=config.parsing.detection_tolerance,
            fallback_min_value=config.parsing.fallback_min_value,
        )
        self._sessions: dict[str, CorrectionSession] = {}
        self._pipeline_locks: dict[str, threading.Lock] = {}
        self._pipeline_users: Counter[str] = Counter()
        self._guard = threading.Lock()

    @contextmanager
    def _pipeline(self, reviewer: str) -> Iterator[None]:
        with self._guard:
            lock = self._pipeline_locks.setdefault(reviewer, threading.Lock())
            self._pipeline_users[reviewer] += 1
        if lock.locked():
            logger.info("Reviewer %s already has a sheet in OCR, queuing", reviewer)
        try:
            with lock:
                yield
        finally:
            # The lock stays registered while any caller still holds or awaits it.
            with self._guard:
                self._pipeline_users[reviewer] -= 1
                if not self._pipeline_users[reviewer]:
                    del self._pipeline_users[reviewer]
                    del self._pipeline_locks[reviewer]

    def digitize(
        self,
        reviewer: str,
        source: Path | bytes,
        lab_id: str,
        filename: str = "sheet",
    ) -> CorrectionSession:
        """Recognize a sheet and make it the reviewer's active session.

        Args:
            reviewer: Who is reviewing.
            source: Image or PDF path, or its bytes.
            lab_id: Lab the records will belong to.
            filename: Display name for logging.

        Returns:
            The new session.

        Raises:
            OCRError: If recognition fails. The previous session is kept.
            ValueError: If the source cannot be decoded.
        """
        with self._pipeline(reviewer):
            scan = self.processor.process(source, filename)
            parsed = self.parser.parse(page.ocr_result for page in scan.pages)

        session = CorrectionSession(
            lab_id=lab_id,
            source=RecordSource.OCR,
            blocks=parsed.blocks,
            words=parsed.words,
            pages=[PageInfo(*page.source_size) for page in scan.pages],
            preprocess_scale=scan.preprocess_scale,
        )
        self.put_session(reviewer, session)
        logger.info(
            "Session %s for %s: %d blocks from %s%s",
            session.id,
            reviewer,
            len(session.blocks),
            filename,
            " (no date found)" if parsed.used_fallback else "",
        )
        return session

    def edit_existing(self, reviewer: str, lab_id: str, date: str) -> CorrectionSession:
        """Open an edit session over the records already stored for a day.

        Raises:
            RecordsNotFoundError: If the day has no records.
        """
        records = self.adapter.list_by_date(lab_id, date)
        if not records:
            raise RecordsNotFoundError(f"No records stored for {date}")
        session = load_existing(records, date, lab_id)
        self.put_session(reviewer, session)
        return session

    def put_session(self, reviewer: str, session: CorrectionSession) -> None:
        with self._guard:
            replaced = self._sessions.get(reviewer)
            self._sessions[reviewer] = session
        if replaced is not None and replaced.id != session.id:
            logger.info("Session %s replaced by %s", replaced.id, session.id)

    def get_session(self, reviewer: str) -> CorrectionSession:
        with self._guard:
            session = self._sessions.get(reviewer)
        if session is None:
            raise SessionNotFoundError(f"No active session for {reviewer}")
        return session

    def discard(self, reviewer: str) -> bool:
        """Drop the reviewer's session. Nothing outside memory changes."""
        with self._guard:
            session = self._sessions.pop(reviewer, None)
        if session is not None:
            logger.info("Session %s discarded", session.id)
        return session is not None

    def discrepancies(self, reviewer: str) -> list[Discrepancy]:
        return find_discrepancies(
            self.get_session(reviewer).blocks, self.config.parsing.display_tolerance
        )

    def commit(self, reviewer: str) -> CommitResult:
        """Write the reviewer's session to the store as one batch.

        The session is discarded only after the store accepts the batch,
        so a failed write can be retried without running OCR again.

        Raises:
            SessionNotFoundError: If there is no active session.
            CommitError: If a block lacks a valid date or nothing is committable.
            PersistenceError: If the store rejects the batch.
        """
        session = self.get_session(reviewer)
        records = normalize_session(session)
        self.adapter.upsert(records)

        with self._guard:
            if self._sessions.get(reviewer) is session:
                del self._sessions[reviewer]
        logger.info("Committed session %s: %d records", session.id, len(records))
        return CommitResult(session_id=session.id, records=records)
