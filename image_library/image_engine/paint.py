"""Free-hand painting on a private canvas.

A PaintSession owns its canvas exclusively until ``finish()`` hands it over as
an ImageDocument; after that (or ``cancel()``) the session is closed.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

import numpy as np

from image_library.logger import get_logger

from .document import ImageDocument

_logger = get_logger("paint")

BRUSH_SIZES = (1, 2, 4, 8, 12, 16)
WHITE = (255, 255, 255)
BLACK = (0, 0, 0)


class PaintSessionClosed(RuntimeError):
    pass


class PaintSession:
    def __init__(self, width: int = 400, height: int = 400, background: tuple[int, int, int] = WHITE) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"canvas size must be positive, got {width}x{height}")
        self._canvas: np.ndarray | None = np.empty((height, width, 3), dtype=np.uint8)
        self._canvas[:, :] = _check_color(background)
        self.brush_color = BLACK
        self.brush_size = 2
        self._last: tuple[float, float] | None = None
        yy, xx = np.mgrid[0:height, 0:width]
        self._grid = (yy, xx)

    @property
    def closed(self) -> bool:
        return self._canvas is None

    @property
    def size(self) -> tuple[int, int]:
        canvas = self._require_canvas()
        return int(canvas.shape[1]), int(canvas.shape[0])

    def _require_canvas(self) -> np.ndarray:
        if self._canvas is None:
            raise PaintSessionClosed("paint session is already finished")
        return self._canvas

    def set_brush(self, color: tuple[int, int, int] | None = None, size: int | None = None) -> None:
        if color is not None:
            self.brush_color = _check_color(color)
        if size is not None:
            if size not in BRUSH_SIZES:
                raise ValueError(f"brush size must be one of {BRUSH_SIZES}, got {size}")
            self.brush_size = int(size)

    # ---- press / drag / release ----
    def press(self, point: tuple[float, float]) -> None:
        self._require_canvas()
        self._last = (float(point[0]), float(point[1]))

    def drag(self, point: tuple[float, float]) -> None:
        if self._last is None:
            return
        p = (float(point[0]), float(point[1]))
        self._draw_segment(self._last, p, self.brush_color, self.brush_size)
        self._last = p

    def release(self) -> None:
        self._last = None

    def stroke(
        self,
        points: Sequence[tuple[float, float]],
        color: tuple[int, int, int] | None = None,
        size: int | None = None,
    ) -> None:
        """Draw a polyline with round caps and joins."""
        self.set_brush(color, size)
        if not points:
            return
        self.press(points[0])
        if len(points) == 1:
            self._draw_segment(points[0], points[0], self.brush_color, self.brush_size)
        for p in points[1:]:
            self.drag(p)
        self.release()

    def _stamp(self, centers: Iterable[tuple[float, float]], color: tuple[int, int, int], size: int) -> None:
        canvas = self._require_canvas()
        yy, xx = self._grid
        radius = max(size / 2.0, 0.5)
        r2 = radius * radius
        h, w = canvas.shape[0], canvas.shape[1]
        for cx, cy in centers:
            x0 = max(0, int(math.floor(cx - radius)))
            x1 = min(w, int(math.ceil(cx + radius)) + 1)
            y0 = max(0, int(math.floor(cy - radius)))
            y1 = min(h, int(math.ceil(cy + radius)) + 1)
            if x0 >= x1 or y0 >= y1:
                continue
            dx = xx[y0:y1, x0:x1] - cx
            dy = yy[y0:y1, x0:x1] - cy
            mask = dx * dx + dy * dy <= r2
            canvas[y0:y1, x0:x1][mask] = color

    def _draw_segment(
        self, a: tuple[float, float], b: tuple[float, float], color: tuple[int, int, int], size: int
    ) -> None:
        length = math.hypot(b[0] - a[0], b[1] - a[1])
        steps = max(1, int(math.ceil(length / 0.5)))
        centers = [(a[0] + (b[0] - a[0]) * i / steps, a[1] + (b[1] - a[1]) * i / steps) for i in range(steps + 1)]
        self._stamp(centers, color, size)

    # ---- completion ----
    def finish(self, path: str | None = None) -> ImageDocument:
        """Close the session and hand the canvas over as a document."""
        canvas = self._require_canvas()
        self._canvas = None
        self._last = None
        _logger.debug("paint session finished: %dx%d", canvas.shape[1], canvas.shape[0])
        doc = ImageDocument(canvas, path, container_size=(canvas.shape[1], canvas.shape[0]))
        doc.dirty = True
        return doc

    def cancel(self) -> None:
        self._canvas = None
        self._last = None


def _check_color(color: tuple[int, int, int]) -> tuple[int, int, int]:
    if len(color) != 3 or any(not 0 <= int(c) <= 255 for c in color):
        raise ValueError(f"color must be an (r, g, b) tuple of 0..255, got {color!r}")
    return int(color[0]), int(color[1]), int(color[2])
