"""Crop backend on numpy pixel buffers.

Pure functions for cropping, no Qt dependencies.
"""

import numpy as np

from image_library.errors import InvalidRegion
from image_library.logger import get_logger

_logger = get_logger("crop")


def validate_crop_bounds(img_width: int, img_height: int, crop: tuple[int, int, int, int]) -> bool:
    """Validate that crop rectangle is within image bounds.

    Args:
        img_width: Source image width
        img_height: Source image height
        crop: (left, top, width, height) crop rectangle

    Returns:
        True if crop is valid, False otherwise
    """
    left, top, width, height = crop
    if left < 0 or top < 0:
        return False
    if width <= 0 or height <= 0:
        return False
    if left + width > img_width:
        return False
    return not top + height > img_height


def crop_pixels(pixels: np.ndarray, crop: tuple[int, int, int, int]) -> np.ndarray:
    """Return a new buffer holding exactly the pixels inside ``crop``.

    Args:
        pixels: (height, width, 3) uint8 source buffer
        crop: (left, top, width, height) in source coordinates

    Raises:
        InvalidRegion: the region has no area or is outside the buffer
    """
    h, w = int(pixels.shape[0]), int(pixels.shape[1])
    if not validate_crop_bounds(w, h, crop):
        _logger.error("Crop bounds %s invalid for image size %dx%d", crop, w, h)
        raise InvalidRegion(f"Crop bounds {crop} invalid for image size {w}x{h}")

    left, top, width, height = (int(v) for v in crop)
    _logger.debug("Cropping %dx%d buffer: crop=%s", w, h, crop)
    # Copy so the result does not keep the discarded source alive.
    return np.ascontiguousarray(pixels[top : top + height, left : left + width]).copy()
