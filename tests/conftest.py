"""Shared test fixtures for the tally sheet test suite."""

from datetime import date
from pathlib import Path

import numpy as np
import pytest

from tally_ocr.commit.records import ProductionRecord, RecordSource
from tally_ocr.extraction.block_parser import BlockParser
from tally_ocr.session.models import Block, CorrectionSession, ShiftRow, ValueCell
from tally_ocr.utils.config import AppConfig, StorageConfig

SHEET_TEXT = """CONTROLE DE PRODUCAO
05/03/2025
TURNO 1 10 12 8 30
TURNO 2 15 20 25
06/03/2025
TURNO 1 40 50
"""


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def memory_config() -> AppConfig:
    """Configuration that keeps records in memory."""
    return AppConfig(storage=StorageConfig(backend="memory"))


@pytest.fixture
def sheet_text() -> str:
    """OCR text of a two-day sheet."""
    return SHEET_TEXT


@pytest.fixture
def parser() -> BlockParser:
    """Block parser whose fallback date is fixed."""
    return BlockParser(today=lambda: date(2025, 3, 10))


@pytest.fixture
def session() -> CorrectionSession:
    """A reviewed session with one dated block."""
    return CorrectionSession(
        id="s1",
        lab_id="lab-1",
        blocks=[
            Block(
                id="b1",
                date="2025-03-05",
                shifts=[
                    ShiftRow(
                        name="TURNO 1",
                        values=[ValueCell("10"), ValueCell("12"), ValueCell("8")],
                        declared_total=30,
                    ),
                    ShiftRow(name="TURNO 2", values=[ValueCell("15"), ValueCell("20")]),
                ],
            )
        ],
    )


@pytest.fixture
def stored_records() -> list[ProductionRecord]:
    """Records previously committed for one day."""
    return [
        ProductionRecord(
            lab_id="lab-1",
            unique_key=f"2025-03-05-TURNO1-COL{col}",
            date="2025-03-05",
            shift="TURNO 1",
            machine_label=f"Line/Machine {col}",
            quantity=qty,
            source=RecordSource.OCR,
        )
        for col, qty in ((1, 10.0), (3, 8.0))
    ]
