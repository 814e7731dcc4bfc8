"""Tesseract OCR wrapper returning text and positioned words.

Recognition is restricted to a character whitelist so stray symbols on
the paper are not read as text.
"""

import shlex
from collections.abc import Iterator
from dataclasses import dataclass, field

import numpy as np
import pytesseract
from PIL import Image

from tally_ocr.utils.config import DEFAULT_WHITELIST
from tally_ocr.utils.logger import get_logger

logger = get_logger(__name__)


class OCRError(RuntimeError):
    """Raised when the OCR engine fails or times out."""


@dataclass(frozen=True)
class BoundingBox:
    """Corner coordinates of a region in preprocessed-image pixels."""

    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0


@dataclass(frozen=True)
class RecognizedWord:
    """A word recognized by OCR, with its box and 0-100 confidence."""

    text: str
    bbox: BoundingBox
    confidence: float
    page: int = 1
    line_key: tuple[int, int, int] = (0, 0, 0)


@dataclass
class OCRLine:
    """One line of recognized text and the words it was built from."""

    text: str
    words: list[RecognizedWord] = field(default_factory=list)


@dataclass
class OCRResult:
    """Full text and word list for one page."""

    text: str
    words: list[RecognizedWord]
    language: str
    confidence: float

    def lines(self) -> Iterator[OCRLine]:
        """Yield the page's lines in reading order.

        Lines are regrouped from the words when Tesseract reported any,
        otherwise the full text is split on newlines.
        """
        if not self.words:
            for raw in self.text.splitlines():
                if raw.strip():
                    yield OCRLine(text=raw.strip())
            return

        current: list[RecognizedWord] = []
        for word in self.words:
            if current and word.line_key != current[-1].line_key:
                yield OCRLine(" ".join(w.text for w in current), current)
                current = []
            current.append(word)
        if current:
            yield OCRLine(" ".join(w.text for w in current), current)


class TesseractEngine:
    """Runs Tesseract on preprocessed tally sheet pages.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        language: Tesseract language code.
        whitelist: Characters Tesseract may recognize.
        psm: Page segmentation mode (3 is fully automatic).
        timeout: Seconds before a recognition call is abandoned.
            ``0`` disables the limit.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        language: str = "por",
        whitelist: str = DEFAULT_WHITELIST,
        psm: int = 3,
        timeout: float = 0,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.language = language
        self.whitelist = whitelist
        self.psm = psm
        self.timeout = timeout

    def build_config(self, psm: int | None = None) -> str:
        """Return the Tesseract command-line options for a call."""
        psm = self.psm if psm is None else psm
        return (
            f"--psm {psm} "
            f"-c tessedit_char_whitelist={shlex.quote(self.whitelist)}"
        )

    def recognize(
        self,
        image: np.ndarray,
        language: str | None = None,
        psm: int | None = None,
        page: int = 1,
    ) -> OCRResult:
        """Recognize text and words on a preprocessed page.

        Args:
            image: Binarized page image.
            language: Language code. Defaults to the engine language.
            psm: Page segmentation mode. Defaults to the engine mode.
            page: 1-based page number stamped on every word.

        Returns:
            OCRResult with the full text and the recognized words.

        Raises:
            OCRError: If Tesseract is missing, fails or times out.
        """
        language = language or self.language
        config = self.build_config(psm)
        pil_image = Image.fromarray(image)

        try:
            text = pytesseract.image_to_string(
                pil_image, lang=language, config=config, timeout=self.timeout
            )
            data = pytesseract.image_to_data(
                pil_image,
                lang=language,
                config=config,
                timeout=self.timeout,
                output_type=pytesseract.Output.DICT,
            )
        except (
            pytesseract.TesseractError,
            pytesseract.TesseractNotFoundError,
            RuntimeError,
        ) as exc:
            logger.error("Tesseract failed on page %d: %s", page, exc)
            raise OCRError(f"OCR failed on page {page}: {exc}") from exc

        words = self._collect_words(data, page)
        avg_conf = sum(w.confidence for w in words) / len(words) if words else 0.0

        logger.info(
            "OCR page %d: %d words, average confidence %.1f",
            page,
            len(words),
            avg_conf,
        )
        return OCRResult(text=text, words=words, language=language, confidence=avg_conf)

    @staticmethod
    def _collect_words(data: dict, page: int) -> list[RecognizedWord]:
        count = len(data["text"])
        par_nums = data.get("par_num", [0] * count)
        words: list[RecognizedWord] = []

        for i in range(count):
            conf = float(data["conf"][i])
            word_text = str(data["text"][i]).strip()
            if conf <= 0 or not word_text:
                continue

            left, top = data["left"][i], data["top"][i]
            words.append(
                RecognizedWord(
                    text=word_text,
                    bbox=BoundingBox(
                        x0=left,
                        y0=top,
                        x1=left + data["width"][i],
                        y1=top + data["height"][i],
                    ),
                    confidence=conf,
                    page=page,
                    line_key=(data["block_num"][i], par_nums[i], data["line_num"][i]),
                )
            )
        return words
