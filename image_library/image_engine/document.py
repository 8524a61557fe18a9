"""The open image: one decoded pixel buffer plus its view state.

All mutations replace the pixel buffer and are serialized on the document
lock. There is no undo stack; the previous buffer is simply dropped.
"""

from __future__ import annotations

import threading

import numpy as np

from image_library.adjust import AdjustmentPreview, adjust
from image_library.crop.coords import DEFAULT_CONTAINER_SIZE, Rect, fit_zoom, to_pixel_region, to_source
from image_library.crop.crop import crop_pixels
from image_library.crop.crop_controller import DEFAULT_MIN_CROP_SIZE, CropGesture
from image_library.logger import get_logger

from .decoder import RGB_CHANNELS, resize_pixels

_logger = get_logger("document")

ZOOM_IN_STEP = 1.25
ZOOM_OUT_STEP = 0.8


class ImageDocument:
    def __init__(
        self,
        pixels: np.ndarray,
        path: str | None = None,
        *,
        container_size: tuple[int, int] | None = None,
        default_container_size: tuple[int, int] = DEFAULT_CONTAINER_SIZE,
        min_crop_size: int = DEFAULT_MIN_CROP_SIZE,
        zoom_steps: tuple[float, float] = (ZOOM_IN_STEP, ZOOM_OUT_STEP),
    ) -> None:
        _check_pixels(pixels)
        self._lock = threading.RLock()
        self._pixels = pixels
        self.path = path
        self.dirty = False
        self.default_container_size = default_container_size
        self.zoom_steps = zoom_steps
        self._gesture = CropGesture(min_crop_size)
        self._zoom = fit_zoom(container_size, (self.width, self.height), default_container_size)

    # ---- read access ----
    @property
    def pixels(self) -> np.ndarray:
        return self._pixels

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def zoom(self) -> float:
        return self._zoom

    @property
    def display_size(self) -> tuple[float, float]:
        return self.width * self._zoom, self.height * self._zoom

    @property
    def crop_selection(self) -> Rect | None:
        return self._gesture.rect

    # ---- zoom ----
    def set_zoom(self, zoom: float) -> None:
        z = float(zoom)
        if not z > 0:
            raise ValueError(f"zoom must be positive, got {zoom!r}")
        with self._lock:
            self._zoom = z

    def fit_to_container(self, container_size: tuple[int, int] | None) -> float:
        with self._lock:
            self._zoom = fit_zoom(container_size, self.size, self.default_container_size)
            return self._zoom

    def zoom_in(self) -> float:
        with self._lock:
            self._zoom *= self.zoom_steps[0]
            return self._zoom

    def zoom_out(self) -> float:
        with self._lock:
            self._zoom *= self.zoom_steps[1]
            return self._zoom

    # ---- pixel edits ----
    def _replace_pixels(self, pixels: np.ndarray) -> None:
        _check_pixels(pixels)
        self._pixels = pixels
        self.dirty = True

    def apply_crop(self, region: tuple[int, int, int, int]) -> None:
        """Crop to a source-space (left, top, width, height) region; zoom resets to 1.0."""
        with self._lock:
            cropped = crop_pixels(self._pixels, region)
            self._replace_pixels(cropped)
            self._zoom = 1.0
            self._gesture.cancel()
            _logger.debug("document crop applied: %s -> %dx%d", region, self.width, self.height)

    def begin_crop(self, point: tuple[float, float]) -> None:
        with self._lock:
            self._gesture.begin(point)

    def drag_crop(self, point: tuple[float, float]) -> Rect | None:
        with self._lock:
            return self._gesture.drag(point)

    def cancel_crop(self) -> None:
        with self._lock:
            self._gesture.cancel()

    def finish_crop(self) -> bool:
        """Commit the current gesture if it is large enough.

        Returns True when the buffer was cropped. A selection that maps to an
        empty source region raises EmptyRegion; the selection is cleared
        either way.
        """
        with self._lock:
            rect = self._gesture.finish()
            if rect is None:
                return False
            source = to_source(rect, self._zoom, self.width, self.height)
            region = to_pixel_region(source)
            self.apply_crop(region)
            return True

    def apply_adjustments(self, brightness: int = 0, contrast: int = 0, saturation: int = 0) -> None:
        with self._lock:
            self._replace_pixels(adjust(self._pixels, brightness, contrast, saturation))

    def adjustment_preview(self) -> AdjustmentPreview:
        """Preview helper bound to a snapshot of the current buffer."""
        with self._lock:
            return AdjustmentPreview(self._pixels)

    def resize(self, width: int, height: int) -> None:
        with self._lock:
            self._replace_pixels(resize_pixels(self._pixels, int(width), int(height)))
            _logger.debug("document resized to %dx%d", self.width, self.height)

    def mark_clean(self) -> None:
        self.dirty = False

    def __repr__(self) -> str:
        return f"ImageDocument(path={self.path!r}, size={self.width}x{self.height}, zoom={self._zoom:.3f})"


def _check_pixels(pixels: np.ndarray) -> None:
    if not isinstance(pixels, np.ndarray) or pixels.ndim != 3 or pixels.shape[2] != RGB_CHANNELS:
        raise ValueError(f"pixel buffer must be an (h, w, 3) array, got {getattr(pixels, 'shape', None)}")
    if pixels.shape[0] <= 0 or pixels.shape[1] <= 0:
        raise ValueError("pixel buffer must not be empty")
    if pixels.dtype != np.uint8:
        raise ValueError(f"pixel buffer must be uint8, got {pixels.dtype}")
