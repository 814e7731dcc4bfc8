"""Tests for PDF handling and sheet loading."""

import io
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from pdf2image.exceptions import PDFPageCountError, PDFSyntaxError
from PIL import Image

from tally_ocr.ocr.document_processor import DocumentProcessor, SheetScan
from tally_ocr.ocr.pdf_handler import PDFHandler
from tally_ocr.ocr.tesseract_engine import OCRResult
from tally_ocr.utils.config import AppConfig


def _image_bytes(
    mode: str = "RGB", size: tuple[int, int] = (30, 20), fmt: str = "PNG", **kwargs
) -> bytes:
    """Encode a blank image of the given mode and (width, height)."""
    img = Image.new(mode, size)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def _empty_result(text: str = "") -> OCRResult:
    return OCRResult(text=text, words=[], language="por", confidence=0.0)


class TestPDFHandler:
    """Tests for the PDFHandler class."""

    def test_init_default_dpi(self) -> None:
        assert PDFHandler().dpi == 300

    @patch("tally_ocr.ocr.pdf_handler.convert_from_path")
    def test_pdf_to_images_from_path(self, mock_convert: MagicMock) -> None:
        mock_convert.return_value = [Image.new("RGB", (30, 20)), Image.new("L", (30, 20))]
        handler = PDFHandler(dpi=200)

        with patch.object(Path, "exists", return_value=True):
            images = handler.pdf_to_images(Path("/fake/sheet.pdf"))

        assert len(images) == 2
        assert all(img.shape == (20, 30, 3) for img in images)
        mock_convert.assert_called_once_with("/fake/sheet.pdf", dpi=200)

    @patch("tally_ocr.ocr.pdf_handler.convert_from_bytes")
    def test_pdf_to_images_from_bytes(self, mock_convert: MagicMock) -> None:
        mock_convert.return_value = [Image.new("RGB", (30, 20))]
        images = PDFHandler().pdf_to_images(b"%PDF-1.4 fake content")
        assert len(images) == 1

    def test_pdf_to_images_file_not_found(self) -> None:
        with pytest.raises(FileNotFoundError):
            PDFHandler().pdf_to_images(Path("/nonexistent/file.pdf"))

    @patch("tally_ocr.ocr.pdf_handler.convert_from_bytes")
    def test_conversion_failure_wrapped(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = PDFPageCountError("Unable to get page count")
        with pytest.raises(ValueError, match="PDF conversion failed"):
            PDFHandler().pdf_to_images(b"%PDF-1.4")

    @patch("tally_ocr.ocr.pdf_handler.convert_from_bytes")
    def test_no_pages(self, mock_convert: MagicMock) -> None:
        mock_convert.return_value = []
        with pytest.raises(ValueError, match="no pages"):
            PDFHandler().pdf_to_images(b"%PDF-1.4")


class TestLoadImages:
    """Tests for decoding submitted sheets."""

    def test_png_bytes(self) -> None:
        processor = DocumentProcessor(AppConfig())
        images = processor.load_images(_image_bytes())
        assert len(images) == 1
        assert images[0].shape == (20, 30, 3)

    def test_grayscale_and_rgba_kept(self) -> None:
        processor = DocumentProcessor(AppConfig())
        assert processor.load_images(_image_bytes("L"))[0].shape == (20, 30)
        assert processor.load_images(_image_bytes("RGBA"))[0].shape == (20, 30, 4)

    def test_palette_converted_to_rgb(self) -> None:
        processor = DocumentProcessor(AppConfig())
        assert processor.load_images(_image_bytes("P"))[0].shape == (20, 30, 3)

    def test_exif_orientation_applied(self) -> None:
        exif = Image.Exif()
        exif[0x0112] = 6
        data = _image_bytes(fmt="JPEG", exif=exif)

        image = DocumentProcessor(AppConfig()).load_images(data)[0]
        assert image.shape == (30, 20, 3)

    def test_unreadable_bytes_raise_value_error(self) -> None:
        with pytest.raises(ValueError, match="Unreadable image"):
            DocumentProcessor(AppConfig()).load_images(b"not an image")

    def test_truncated_image_raises_value_error(self) -> None:
        noise = np.random.default_rng(0).integers(0, 256, (64, 64, 3), dtype=np.uint8)
        buf = io.BytesIO()
        Image.fromarray(noise).save(buf, format="PNG")
        truncated = buf.getvalue()[:400]

        with pytest.raises(ValueError, match="Unreadable image"):
            DocumentProcessor(AppConfig()).load_images(truncated)

    def test_pdf_bytes_sent_to_pdf_handler(self) -> None:
        processor = DocumentProcessor(AppConfig())
        pages = [np.zeros((20, 30, 3), dtype=np.uint8)] * 2
        with patch.object(
            processor.pdf_handler, "pdf_to_images", return_value=pages
        ) as mock_pdf:
            images = processor.load_images(b"%PDF-1.7 ...")
        assert len(images) == 2
        mock_pdf.assert_called_once()

    @patch("tally_ocr.ocr.pdf_handler.convert_from_bytes")
    def test_broken_pdf_raises_value_error(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = PDFSyntaxError("bad xref")
        with pytest.raises(ValueError, match="bad xref"):
            DocumentProcessor(AppConfig()).load_images(b"%PDF-1.4")

    def test_path_source(self, tmp_path: Path) -> None:
        path = tmp_path / "sheet.png"
        path.write_bytes(_image_bytes())
        images = DocumentProcessor(AppConfig()).load_images(path)
        assert images[0].shape == (20, 30, 3)


class TestDocumentProcessor:
    """Tests for preprocessing and OCR over every page."""

    def test_process_single_image(self) -> None:
        processor = DocumentProcessor(AppConfig())
        with patch.object(
            processor.ocr_engine, "recognize", return_value=_empty_result("TURNO 1")
        ) as mock_recognize:
            scan = processor.process(_image_bytes(), "sheet.png")

        assert isinstance(scan, SheetScan)
        assert scan.page_count == 1
        assert scan.source_file == "sheet.png"
        assert scan.preprocess_scale == 2.0
        assert scan.pages[0].source_size == (30, 20)
        processed = mock_recognize.call_args.args[0]
        assert processed.shape == (40, 60, 3)
        assert mock_recognize.call_args.kwargs["page"] == 1

    def test_process_numbers_pdf_pages(self) -> None:
        processor = DocumentProcessor(AppConfig())
        pages = [np.zeros((20, 30, 3), dtype=np.uint8)] * 3
        with (
            patch.object(processor.pdf_handler, "pdf_to_images", return_value=pages),
            patch.object(
                processor.ocr_engine, "recognize", return_value=_empty_result()
            ) as mock_recognize,
        ):
            scan = processor.process(b"%PDF-1.4", "sheet.pdf")

        assert [p.page_number for p in scan.pages] == [1, 2, 3]
        assert [c.kwargs["page"] for c in mock_recognize.call_args_list] == [1, 2, 3]
