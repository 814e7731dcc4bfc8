"""Luminance conversion and fixed-threshold binarization.

A single mid-range threshold keeps both dark pencil marks and lighter
printed digits on tally sheets; there is no adaptive thresholding.
"""

import numpy as np

from tally_ocr.utils.logger import get_logger

logger = get_logger(__name__)

# ITU-R BT.709 luma coefficients for R, G, B.
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722])
DEFAULT_THRESHOLD = 128


def to_luminance(image: np.ndarray) -> np.ndarray:
    """Convert an image to per-pixel luminance.

    Args:
        image: Grayscale (H, W), RGB (H, W, 3) or RGBA (H, W, 4) image.

    Returns:
        Float array of shape (H, W) with values in the 0-255 range.
    """
    if image.ndim == 2:
        return image.astype(np.float64)
    rgb = image[..., :3].astype(np.float64)
    return rgb @ LUMA_WEIGHTS


def binarize_fixed(image: np.ndarray, threshold: int = DEFAULT_THRESHOLD) -> np.ndarray:
    """Binarize an image with a fixed luminance threshold.

    Pixels whose luminance is at or above ``threshold`` become white (255),
    the rest black (0). The output keeps the input's channel layout: color
    channels all carry the binary value and an alpha channel is copied
    unchanged.

    Args:
        image: Grayscale, RGB or RGBA image.
        threshold: Luminance cut-off.

    Returns:
        New uint8 image with the same shape as the input.
    """
    mask = to_luminance(image) >= threshold
    binary = np.where(mask, 255, 0).astype(np.uint8)

    if image.ndim == 2:
        result = binary
    else:
        result = np.empty(image.shape, dtype=np.uint8)
        result[..., :3] = binary[..., np.newaxis]
        if image.shape[2] == 4:
            result[..., 3] = image[..., 3]

    logger.debug(
        "Binarized image at threshold %d (%.1f%% white)",
        threshold,
        100.0 * mask.mean() if mask.size else 0.0,
    )
    return result
