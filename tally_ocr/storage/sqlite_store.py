"""SQLite-backed record store."""

import sqlite3
from pathlib import Path

from tally_ocr.commit.records import ProductionRecord, RecordSource
from tally_ocr.utils.logger import get_logger

from .base import PersistenceAdapter, PersistenceError

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS operacao_producao (
    lab_id TEXT NOT NULL,
    identificador_unico TEXT NOT NULL,
    data_producao TEXT NOT NULL,
    turno TEXT NOT NULL,
    produto TEXT NOT NULL,
    peso REAL NOT NULL,
    source TEXT NOT NULL,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now')),
    PRIMARY KEY (lab_id, identificador_unico)
);
CREATE INDEX IF NOT EXISTS idx_producao_lab_date
    ON operacao_producao(lab_id, data_producao);
"""

_UPSERT = """
INSERT INTO operacao_producao
    (lab_id, identificador_unico, data_producao, turno, produto, peso, source)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(lab_id, identificador_unico) DO UPDATE SET
    data_producao = excluded.data_producao,
    turno = excluded.turno,
    produto = excluded.produto,
    peso = excluded.peso,
    source = excluded.source,
    updated_at = datetime('now')
"""

_COLUMNS = "lab_id, identificador_unico, data_producao, turno, produto, peso, source"


class SQLiteAdapter(PersistenceAdapter):
    """Stores records in a single SQLite table.

    Args:
        database_path: File to open, created with its parent directory if
            missing. ``":memory:"`` is not supported since every call opens
            its own connection.
    """

    def __init__(self, database_path: Path | str) -> None:
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot create schema: {exc}") from exc
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.database_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open {self.database_path}: {exc}") from exc

    def upsert(self, records: list[ProductionRecord]) -> int:
        rows = [
            (
                r.lab_id,
                r.unique_key,
                r.date,
                r.shift,
                r.machine_label,
                r.quantity,
                r.source.value,
            )
            for r in records
        ]
        conn = self._connect()
        try:
            with conn:
                conn.executemany(_UPSERT, rows)
        except sqlite3.Error as exc:
            logger.error("Upsert of %d records failed: %s", len(rows), exc)
            raise PersistenceError(f"Upsert failed: {exc}") from exc
        finally:
            conn.close()
        logger.info("Upserted %d records into %s", len(rows), self.database_path)
        return len(rows)

    def list_by_lab_and_date_range(
        self, lab_id: str, start: str | None = None, end: str | None = None
    ) -> list[ProductionRecord]:
        query = f"SELECT {_COLUMNS} FROM operacao_producao WHERE lab_id = ?"
        params: list[str] = [lab_id]
        if start is not None:
            query += " AND data_producao >= ?"
            params.append(start)
        if end is not None:
            query += " AND data_producao <= ?"
            params.append(end)
        query += " ORDER BY data_producao, identificador_unico"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Query failed: {exc}") from exc
        finally:
            conn.close()

        return [
            ProductionRecord(
                lab_id=row[0],
                unique_key=row[1],
                date=row[2],
                shift=row[3],
                machine_label=row[4],
                quantity=float(row[5]),
                source=RecordSource(row[6]),
            )
            for row in rows
        ]

    def delete_by_date(self, lab_id: str, date: str) -> int:
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    "DELETE FROM operacao_producao WHERE lab_id = ? AND data_producao = ?",
                    (lab_id, date),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Delete failed: {exc}") from exc
        finally:
            conn.close()
        logger.info("Deleted %d records of %s for lab %s", cursor.rowcount, date, lab_id)
        return cursor.rowcount
