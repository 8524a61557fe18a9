"""Crop package public API.

Expose pure-backend crop helpers for external import as `image_library.crop`.

Important: keep this module lightweight (numpy only, no Qt, no pyvips).
"""

from .coords import Rect, fit_zoom, point_to_display, point_to_source, to_display, to_pixel_region, to_source
from .crop import crop_pixels, validate_crop_bounds
from .crop_controller import DEFAULT_MIN_CROP_SIZE, CropGesture

__all__ = [
    "DEFAULT_MIN_CROP_SIZE",
    "CropGesture",
    "Rect",
    "crop_pixels",
    "fit_zoom",
    "point_to_display",
    "point_to_source",
    "to_display",
    "to_pixel_region",
    "to_source",
    "validate_crop_bounds",
]
