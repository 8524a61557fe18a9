"""Brightness / contrast / saturation on RGB numpy buffers.

The three steps run in a fixed order (brightness, contrast, saturation) and
each call starts from the buffer it is given; nothing accumulates between
calls. Live previews must therefore re-apply from an untouched baseline, which
is what ``AdjustmentPreview`` does.
"""

from __future__ import annotations

import numpy as np

from image_library.logger import get_logger

_logger = get_logger("adjustments")

ADJUST_MIN = -100
ADJUST_MAX = 100
RGB_CHANNELS = 3


def _check_param(name: str, value: int) -> int:
    if isinstance(value, bool) or int(value) != value:
        raise ValueError(f"{name} must be an integer, got {value!r}")
    v = int(value)
    if not ADJUST_MIN <= v <= ADJUST_MAX:
        raise ValueError(f"{name} must be in [{ADJUST_MIN}, {ADJUST_MAX}], got {v}")
    return v


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def contrast_factor(contrast: int) -> float:
    return (259.0 * (contrast + 255.0)) / (255.0 * (259.0 - contrast))


def adjust(pixels: np.ndarray, brightness: int = 0, contrast: int = 0, saturation: int = 0) -> np.ndarray:
    """Return a new buffer with the three adjustments applied.

    Args:
        pixels: (height, width, 3) uint8 buffer; left untouched
        brightness: added to every channel, in [-100, 100]
        contrast: in [-100, 100], 0 is neutral
        saturation: in [-100, 100], 0 skips the step entirely
    """
    b = _check_param("brightness", brightness)
    c = _check_param("contrast", contrast)
    s = _check_param("saturation", saturation)
    if pixels.ndim != 3 or pixels.shape[2] != RGB_CHANNELS:
        raise ValueError(f"expected an (h, w, 3) buffer, got shape {pixels.shape}")

    rgb = np.clip(pixels.astype(np.int16) + b, 0, 255)

    factor = contrast_factor(c)
    rgb = np.clip(_round_half_up(factor * (rgb - 128.0) + 128.0), 0, 255)

    if s != 0:
        # Gray is computed once per pixel from the post-contrast channels.
        gray = rgb.sum(axis=2, keepdims=True) / 3.0
        rgb = np.clip(_round_half_up(gray + (rgb - gray) * (1.0 + s / 100.0)), 0, 255)

    _logger.debug("adjust %s: brightness=%d contrast=%d saturation=%d", pixels.shape, b, c, s)
    return rgb.astype(np.uint8)


class AdjustmentPreview:
    """Repeated previews over one fixed baseline buffer."""

    def __init__(self, baseline: np.ndarray) -> None:
        self._baseline = baseline.copy()
        self.params = (0, 0, 0)

    @property
    def baseline(self) -> np.ndarray:
        return self._baseline

    def preview(self, brightness: int = 0, contrast: int = 0, saturation: int = 0) -> np.ndarray:
        out = adjust(self._baseline, brightness, contrast, saturation)
        self.params = (brightness, contrast, saturation)
        return out

    def result(self) -> np.ndarray:
        return adjust(self._baseline, *self.params)
