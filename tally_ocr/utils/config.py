"""Configuration for the tally sheet digitizer.

Settings live in ``configs/config.yaml`` and are validated with pydantic;
every section has defaults so the system runs without a config file.
"""

import logging
import string
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/config.yaml")

# Digits, letters, the date/number punctuation and space.
DEFAULT_WHITELIST = string.digits + string.ascii_letters + "/.,: "


class PreprocessingConfig(BaseModel):
    """Image preprocessing before OCR."""

    scale_factor: float = Field(default=2.0, gt=0)
    threshold: int = Field(default=128, ge=0, le=255)


class OCRConfig(BaseModel):
    """Tesseract invocation settings."""

    tesseract_cmd: str | None = None
    language: str = "por"
    psm: int = 3
    whitelist: str = DEFAULT_WHITELIST
    pdf_dpi: int = 300
    timeout: float = 60.0


class ParsingConfig(BaseModel):
    """Block parsing and reconciliation tolerances."""

    detection_tolerance: float = 5.0
    display_tolerance: float = 2.0
    fallback_min_value: int = 10


class StorageConfig(BaseModel):
    """Where committed production records are kept."""

    backend: str = "sqlite"
    database_path: str = "data/producao.db"


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    parsing: ParsingConfig = Field(default_factory=ParsingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
