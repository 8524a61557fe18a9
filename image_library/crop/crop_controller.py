from __future__ import annotations

from image_library.logger import get_logger

from .coords import Rect

_logger = get_logger("crop_controller")

DEFAULT_MIN_CROP_SIZE = 10


class CropGesture:
    """Display-space crop selection driven by press/drag/release.

    The selection is kept normalized (non-negative size, origin at the min
    corner). A gesture whose width or height does not exceed ``min_size``
    display pixels is dropped on release.
    """

    def __init__(self, min_size: int = DEFAULT_MIN_CROP_SIZE) -> None:
        self.min_size = int(min_size)
        self._start: tuple[float, float] | None = None
        self._rect: Rect | None = None

    @property
    def active(self) -> bool:
        return self._start is not None

    @property
    def rect(self) -> Rect | None:
        return self._rect

    def begin(self, point: tuple[float, float]) -> None:
        self._start = (float(point[0]), float(point[1]))
        self._rect = Rect(self._start[0], self._start[1], 0.0, 0.0)

    def drag(self, point: tuple[float, float]) -> Rect | None:
        if self._start is None:
            return None
        self._rect = Rect.from_points(self._start, (float(point[0]), float(point[1])))
        return self._rect

    def is_committable(self, rect: Rect | None = None) -> bool:
        r = rect if rect is not None else self._rect
        if r is None:
            return False
        r = r.normalized()
        return r.w > self.min_size and r.h > self.min_size

    def finish(self) -> Rect | None:
        """End the gesture; return the selection only if it may be committed."""
        rect = self._rect
        self.cancel()
        if rect is None:
            return None
        if not self.is_committable(rect):
            _logger.debug("crop gesture %s below minimum %dpx; dropped", rect, self.min_size)
            return None
        return rect

    def cancel(self) -> None:
        self._start = None
        self._rect = None
