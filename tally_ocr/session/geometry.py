"""Mapping of OCR word boxes onto the image as the reviewer sees it."""

from dataclasses import dataclass

from tally_ocr.ocr.tesseract_engine import BoundingBox


@dataclass(frozen=True)
class DisplayBox:
    """A rectangle in on-screen pixels."""

    x: float
    y: float
    width: float
    height: float


def map_box_to_display(
    bbox: BoundingBox,
    source_size: tuple[int, int],
    display_size: tuple[float, float],
    preprocess_scale: float = 2.0,
) -> DisplayBox:
    """Map a box from preprocessed-image pixels to display pixels.

    OCR boxes are measured on the upscaled image, so they are first divided
    by the preprocessing scale to land on the original photo and then
    stretched to the size the photo is displayed at.

    Args:
        bbox: Word box in preprocessed-image pixels.
        source_size: (width, height) of the original photo.
        display_size: (width, height) the photo is rendered at.
        preprocess_scale: Linear factor applied by the preprocessor.

    Returns:
        The box in display pixels.

    Raises:
        ValueError: If a size or the scale is not positive.
    """
    src_w, src_h = source_size
    disp_w, disp_h = display_size
    if min(src_w, src_h, disp_w, disp_h) <= 0 or preprocess_scale <= 0:
        raise ValueError("Image sizes and scale must be positive")

    sx = disp_w / (src_w * preprocess_scale)
    sy = disp_h / (src_h * preprocess_scale)
    return DisplayBox(
        x=bbox.x0 * sx,
        y=bbox.y0 * sy,
        width=bbox.width * sx,
        height=bbox.height * sy,
    )
