"""Loads a tally sheet image and runs preprocessing and OCR on each page.

Images arrive as file paths, as raw bytes from a file picker or a
clipboard paste, or as multi-page PDF scans.
"""

import io
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from tally_ocr.preprocessing.pipeline import PreprocessingPipeline, QualityMetrics
from tally_ocr.utils.config import AppConfig
from tally_ocr.utils.logger import get_logger

from .pdf_handler import PDFHandler
from .tesseract_engine import OCRResult, TesseractEngine

logger = get_logger(__name__)

_PASSTHROUGH_MODES = {"L", "RGB", "RGBA"}


@dataclass
class PageScan:
    """OCR output for one page, with the size of the original photo."""

    page_number: int
    ocr_result: OCRResult
    source_size: tuple[int, int]
    quality_metrics: QualityMetrics


@dataclass
class SheetScan:
    """All pages recognized from one submitted image or PDF."""

    source_file: str
    pages: list[PageScan]
    preprocess_scale: float

    @property
    def page_count(self) -> int:
        return len(self.pages)


class DocumentProcessor:
    """Image loading, preprocessing and OCR for tally sheets.

    Args:
        config: Application configuration object.
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self.pdf_handler = PDFHandler(dpi=config.ocr.pdf_dpi)
        self.preprocessing = PreprocessingPipeline(config.preprocessing)
        self.ocr_engine = TesseractEngine(
            tesseract_cmd=config.ocr.tesseract_cmd,
            language=config.ocr.language,
            whitelist=config.ocr.whitelist,
            psm=config.ocr.psm,
            timeout=config.ocr.timeout,
        )

    def process(self, source: Path | bytes, filename: str = "sheet") -> SheetScan:
        """Preprocess and recognize every page of a submitted sheet.

        Args:
            source: Path to an image/PDF file, or its raw bytes.
            filename: Display name for logging.

        Returns:
            The recognized pages.

        Raises:
            ValueError: If the source is not a readable image or PDF.
            OCRError: If recognition fails on any page.
        """
        logger.info("Processing sheet: %s", filename)
        images = self.load_images(source)
        pages: list[PageScan] = []

        for number, image in enumerate(images, start=1):
            processed, metrics = self.preprocessing.process(image)
            ocr_result = self.ocr_engine.recognize(processed, page=number)
            pages.append(
                PageScan(
                    page_number=number,
                    ocr_result=ocr_result,
                    source_size=(image.shape[1], image.shape[0]),
                    quality_metrics=metrics,
                )
            )

        logger.info("Recognized %d pages from %s", len(pages), filename)
        return SheetScan(
            source_file=filename,
            pages=pages,
            preprocess_scale=self.preprocessing.scale_factor,
        )

    def load_images(self, source: Path | bytes) -> list[np.ndarray]:
        """Decode a source into page arrays (grayscale, RGB or RGBA).

        Phone photos are rotated according to their EXIF orientation.

        Raises:
            ValueError: If the image or PDF cannot be decoded.
        """
        if isinstance(source, bytes):
            if source[:4] == b"%PDF":
                return self.pdf_handler.pdf_to_images(source)
            return [self._decode(io.BytesIO(source))]

        path = Path(source)
        if path.suffix.lower() == ".pdf":
            return self.pdf_handler.pdf_to_images(path)
        return [self._decode(path)]

    @staticmethod
    def _decode(fp: io.BytesIO | Path) -> np.ndarray:
        try:
            img = Image.open(fp)
            img.load()
            img = ImageOps.exif_transpose(img)
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError(f"Unreadable image: {exc}") from exc

        if img.mode not in _PASSTHROUGH_MODES:
            img = img.convert("RGB")
        return np.array(img)
