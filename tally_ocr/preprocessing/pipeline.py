"""Preprocessing pipeline that prepares tally sheet photos for OCR.

Upscales the photo with smoothing, then binarizes it on luminance.
"""

from dataclasses import dataclass

import cv2
import numpy as np

from tally_ocr.utils.config import PreprocessingConfig
from tally_ocr.utils.logger import get_logger

from .binarize import binarize_fixed, to_luminance

logger = get_logger(__name__)


@dataclass
class QualityMetrics:
    """Before/after contrast of a preprocessed page."""

    contrast_before: float
    contrast_after: float


def calculate_contrast(image: np.ndarray) -> float:
    """Return the standard deviation of the image luminance."""
    return float(to_luminance(image).std())


def upscale(image: np.ndarray, factor: float = 2.0) -> np.ndarray:
    """Resize an image by a linear factor with bilinear smoothing.

    Args:
        image: Input image of any channel layout.
        factor: Linear scale factor applied to both axes.

    Returns:
        The resized image.
    """
    h, w = image.shape[:2]
    size = (max(1, round(w * factor)), max(1, round(h * factor)))
    return cv2.resize(image, size, interpolation=cv2.INTER_LINEAR)


class PreprocessingPipeline:
    """Turns a raw photo into a binarized, upscaled image for OCR.

    Args:
        config: Scale factor and binarization threshold.
    """

    def __init__(self, config: PreprocessingConfig) -> None:
        self.config = config

    @property
    def scale_factor(self) -> float:
        return self.config.scale_factor

    def process(self, image: np.ndarray) -> tuple[np.ndarray, QualityMetrics]:
        """Run the pipeline on one page.

        The input array is never modified.

        Args:
            image: Grayscale, RGB or RGBA page image.

        Returns:
            Tuple of (processed_image, quality_metrics).
        """
        contrast_before = calculate_contrast(image)

        result = upscale(image, self.config.scale_factor)
        result = binarize_fixed(result, self.config.threshold)

        metrics = QualityMetrics(
            contrast_before=contrast_before,
            contrast_after=calculate_contrast(result),
        )
        logger.info(
            "Preprocessed %dx%d page to %dx%d, contrast %.1f->%.1f",
            image.shape[1],
            image.shape[0],
            result.shape[1],
            result.shape[0],
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return result, metrics
