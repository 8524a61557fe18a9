"""Display-space <-> source-space mapping under a uniform zoom factor.

Display space is what the user sees after scaling; source space is the pixel
grid of the decoded buffer. Source -> display is a plain multiplication;
display -> source divides and then clamps to the buffer bounds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from image_library.errors import EmptyRegion

DEFAULT_CONTAINER_SIZE = (500, 400)


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned rect in (x, y, w, h) form."""

    x: float
    y: float
    w: float
    h: float

    @property
    def x2(self) -> float:
        return self.x + self.w

    @property
    def y2(self) -> float:
        return self.y + self.h

    @property
    def area(self) -> float:
        return self.w * self.h

    def normalized(self) -> Rect:
        x, y, w, h = float(self.x), float(self.y), float(self.w), float(self.h)
        if w < 0:
            x = x + w
            w = -w
        if h < 0:
            y = y + h
            h = -h
        return Rect(x, y, w, h)

    @classmethod
    def from_points(cls, a: tuple[float, float], b: tuple[float, float]) -> Rect:
        return cls(a[0], a[1], b[0] - a[0], b[1] - a[1]).normalized()


def _check_zoom(zoom: float) -> float:
    z = float(zoom)
    if not z > 0 or math.isinf(z):
        raise ValueError(f"zoom must be a positive finite number, got {zoom!r}")
    return z


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def point_to_display(point: tuple[float, float], zoom: float) -> tuple[float, float]:
    z = _check_zoom(zoom)
    return point[0] * z, point[1] * z


def point_to_source(point: tuple[float, float], zoom: float) -> tuple[float, float]:
    z = _check_zoom(zoom)
    return point[0] / z, point[1] / z


def to_display(rect: Rect, zoom: float) -> Rect:
    z = _check_zoom(zoom)
    return Rect(rect.x * z, rect.y * z, rect.w * z, rect.h * z)


def to_source(rect: Rect, zoom: float, source_width: int, source_height: int) -> Rect:
    """Map a display rect into the source buffer, clamped to its bounds.

    Raises:
        EmptyRegion: the clamped rect has no width or no height.
    """
    z = _check_zoom(zoom)
    r = rect.normalized()
    sw = float(source_width)
    sh = float(source_height)

    x = _clamp(r.x / z, 0.0, sw)
    y = _clamp(r.y / z, 0.0, sh)
    w = min(r.w / z, sw - x)
    h = min(r.h / z, sh - y)
    if w <= 0 or h <= 0:
        raise EmptyRegion(f"display rect {r} maps to an empty source region at zoom {z:g}")
    return Rect(x, y, w, h)


def to_pixel_region(rect: Rect) -> tuple[int, int, int, int]:
    """Integer (left, top, width, height) for the crop engine.

    Left/top are floored, width/height truncated, so the region never grows
    past the clamped rect.
    """
    r = rect.normalized()
    return math.floor(r.x), math.floor(r.y), int(r.w), int(r.h)


def fit_zoom(
    container_size: tuple[int, int] | None,
    image_size: tuple[int, int],
    default_size: tuple[int, int] = DEFAULT_CONTAINER_SIZE,
) -> float:
    """Zoom that fits the whole image inside the container.

    A container that has not been laid out yet (None, or a zero dimension)
    is replaced by ``default_size``.
    """
    iw, ih = image_size
    if iw <= 0 or ih <= 0:
        raise ValueError(f"image size must be positive, got {iw}x{ih}")
    if container_size is None or container_size[0] <= 0 or container_size[1] <= 0:
        cw, ch = default_size
    else:
        cw, ch = container_size
    return min(cw / iw, ch / ih)
