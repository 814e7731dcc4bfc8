"""Tests for the command-line interface and CSV export."""

import csv
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from tally_ocr.cli import commit_session_file, export_records, main, read_session, write_session
from tally_ocr.commit.records import ProductionRecord, RecordSource
from tally_ocr.ocr.document_processor import PageScan, SheetScan
from tally_ocr.ocr.tesseract_engine import OCRResult
from tally_ocr.preprocessing.pipeline import QualityMetrics
from tally_ocr.review.service import ReviewService
from tally_ocr.session.models import CorrectionSession
from tally_ocr.storage.sqlite_store import SQLiteAdapter
from tally_ocr.utils.config import AppConfig

NO_CONFIG = "/nonexistent/config.yaml"


def _mock_scan(text: str) -> SheetScan:
    return SheetScan(
        source_file="sheet.png",
        pages=[
            PageScan(
                page_number=1,
                ocr_result=OCRResult(text=text, words=[], language="por", confidence=0.0),
                source_size=(640, 480),
                quality_metrics=QualityMetrics(40.0, 120.0),
            )
        ],
        preprocess_scale=2.0,
    )


def _write_session_file(session: CorrectionSession, tmp_path: Path) -> Path:
    path = tmp_path / "session.json"
    write_session(session, path)
    return path


class TestSessionFiles:
    """Tests for saving and loading session JSON."""

    def test_round_trip(self, session: CorrectionSession, tmp_path: Path) -> None:
        path = _write_session_file(session, tmp_path)
        assert json.loads(path.read_text())["lab_id"] == "lab-1"
        assert read_session(path).blocks == session.blocks


class TestCommitSessionFile:
    """Tests for committing a saved session."""

    def test_commit(
        self, session: CorrectionSession, memory_config: AppConfig, tmp_path: Path
    ) -> None:
        service = ReviewService(memory_config, processor=MagicMock())
        result = commit_session_file(service, _write_session_file(session, tmp_path))

        assert result.count == 5
        assert len(service.adapter.list_by_lab_and_date_range("lab-1")) == 5

    def test_lab_override(
        self, session: CorrectionSession, memory_config: AppConfig, tmp_path: Path
    ) -> None:
        service = ReviewService(memory_config, processor=MagicMock())
        commit_session_file(service, _write_session_file(session, tmp_path), "lab-9")
        assert len(service.adapter.list_by_lab_and_date_range("lab-9")) == 5


class TestExportRecords:
    """Tests for CSV export."""

    def test_write_csv(self, stored_records: list[ProductionRecord], tmp_path: Path) -> None:
        output = tmp_path / "out" / "producao.csv"
        assert export_records(stored_records, output) == 2

        with open(output) as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["identificador_unico"] == "2025-03-05-TURNO1-COL1"
        assert rows[0]["produto"] == "Line/Machine 1"
        assert rows[0]["source"] == "ocr_multi_day"
        assert float(rows[1]["peso"]) == 8.0


class TestMain:
    """Tests for the CLI entry point."""

    def test_no_command_prints_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0

    def test_digitize_writes_session(
        self, tmp_path: Path, sheet_text: str, capsys: pytest.CaptureFixture
    ) -> None:
        image = tmp_path / "sheet.png"
        image.write_bytes(b"png")
        output = tmp_path / "session.json"

        with patch("tally_ocr.review.service.DocumentProcessor") as mock_cls:
            mock_cls.return_value.process.return_value = _mock_scan(sheet_text)
            main(
                [
                    "--config", NO_CONFIG,
                    "--db", str(tmp_path / "p.db"),
                    "digitize", str(image),
                    "--lab", "lab-1",
                    "-o", str(output),
                ]
            )

        session = read_session(output)
        assert session.lab_id == "lab-1"
        assert [b.date for b in session.blocks] == ["2025-03-05", "2025-03-06"]
        assert "TURNO 1: 10, 12, 8 = 30" in capsys.readouterr().out

    def test_digitize_missing_image(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(
                [
                    "--config", NO_CONFIG,
                    "--db", str(tmp_path / "p.db"),
                    "digitize", str(tmp_path / "missing.png"),
                    "--lab", "lab-1",
                ]
            )
        assert exc_info.value.code == 1

    def test_commit_edit_and_export(
        self, session: CorrectionSession, tmp_path: Path
    ) -> None:
        db = tmp_path / "p.db"
        base = ["--config", NO_CONFIG, "--db", str(db)]

        main(base + ["commit", str(_write_session_file(session, tmp_path))])
        assert len(SQLiteAdapter(db).list_by_lab_and_date_range("lab-1")) == 5

        edit_file = tmp_path / "edit.json"
        main(base + ["edit", "2025-03-05", "--lab", "lab-1", "-o", str(edit_file)])
        edited = read_session(edit_file)
        assert edited.source is RecordSource.MANUAL_EDIT

        csv_file = tmp_path / "producao.csv"
        main(base + ["export", "--lab", "lab-1", "-o", str(csv_file)])
        with open(csv_file) as f:
            assert len(list(csv.DictReader(f))) == 5

    def test_commit_invalid_date_exits(
        self,
        session: CorrectionSession,
        tmp_path: Path,
        capsys: pytest.CaptureFixture,
    ) -> None:
        session.blocks[0].date = "ontem"
        path = _write_session_file(session, tmp_path)

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", NO_CONFIG, "--db", str(tmp_path / "p.db"), "commit", str(path)])

        assert exc_info.value.code == 1
        assert "block 1 (b1)" in capsys.readouterr().err

    def test_edit_day_without_records(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(
                [
                    "--config", NO_CONFIG,
                    "--db", str(tmp_path / "p.db"),
                    "edit", "2025-03-05",
                    "--lab", "lab-1",
                    "-o", str(tmp_path / "edit.json"),
                ]
            )
        assert exc_info.value.code == 1
