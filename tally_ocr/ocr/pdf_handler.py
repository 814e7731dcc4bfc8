"""Rendering of scanned tally sheets delivered as PDF files."""

from pathlib import Path

import numpy as np
from pdf2image import convert_from_bytes, convert_from_path
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFSyntaxError,
)
from PIL import Image

from tally_ocr.utils.logger import get_logger

logger = get_logger(__name__)

_RENDER_ERRORS = (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFSyntaxError,
    OSError,
)


class PDFHandler:
    """Turns each page of a scanned sheet PDF into an RGB array.

    Args:
        dpi: Rendering resolution; sheets are read at 300 by default.
    """

    def __init__(self, dpi: int = 300) -> None:
        self.dpi = dpi

    def pdf_to_images(self, pdf_source: Path | bytes) -> list[np.ndarray]:
        """Render every page of a scan in page order.

        Raises:
            FileNotFoundError: If ``pdf_source`` is a path that does not exist.
            ValueError: If poppler is missing or the PDF cannot be read.
        """
        if isinstance(pdf_source, bytes):
            pages = self._render(lambda: convert_from_bytes(pdf_source, dpi=self.dpi))
            origin = f"{len(pdf_source)} bytes"
        else:
            path = Path(pdf_source)
            if not path.exists():
                raise FileNotFoundError(f"PDF file not found: {path}")
            pages = self._render(lambda: convert_from_path(str(path), dpi=self.dpi))
            origin = str(path)

        if not pages:
            raise ValueError("PDF has no pages")
        logger.info(
            "Rendered %d sheet pages from %s at %d DPI", len(pages), origin, self.dpi
        )
        return [np.array(page.convert("RGB")) for page in pages]

    @staticmethod
    def _render(convert) -> list[Image.Image]:
        try:
            return convert()
        except _RENDER_ERRORS as exc:
            raise ValueError(f"PDF conversion failed: {exc}") from exc
