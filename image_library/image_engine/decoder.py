"""Codec service on top of pyvips.

Decodes files into RGB numpy arrays and encodes RGB arrays back into a named
format. Pixel formats themselves are libvips' business; this module only
normalizes band layout and maps failures onto DecodeError/EncodeError.
"""

import contextlib
import os
from pathlib import Path
from typing import Any

import numpy as np

from image_library.errors import DecodeError, EncodeError
from image_library.logger import get_logger

_logger = get_logger("decoder")

RGB_CHANNELS = 3
FORMAT_JPEG = "jpeg"
FORMAT_PNG = "png"
_SUFFIXES = {FORMAT_JPEG: ".jpg", FORMAT_PNG: ".png"}

# Locate bundled libvips (for frozen exe/_MEIPASS and source tree)
_BASE_DIR = Path(getattr(os.sys, "_MEIPASS", Path(__file__).resolve().parent.parent))
_LIBVIPS_DIR = _BASE_DIR / "libvips"
if os.name == "nt" and _LIBVIPS_DIR.exists():
    with contextlib.suppress(OSError):
        os.add_dll_directory(str(_LIBVIPS_DIR))


_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        # Configure pyvips caches to avoid memory growth
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(0)
            pyvips.cache_set_max_mem(0)
            pyvips.cache_set_max_files(0)
        _pyvips = pyvips
    return _pyvips


def format_for_path(path: str | Path) -> str:
    """``.png`` -> png, anything else -> jpeg."""
    return FORMAT_PNG if Path(path).suffix.lower() == ".png" else FORMAT_JPEG


def _to_rgb_uchar(image: Any) -> Any:
    pyvips = _get_pyvips_module()
    with contextlib.suppress(pyvips.Error):
        image = image.colourspace("srgb")
    if image.hasalpha():
        image = image.flatten(background=[0, 0, 0])
    if image.bands > RGB_CHANNELS:
        image = image.extract_band(0, n=RGB_CHANNELS)
    elif image.bands < RGB_CHANNELS:
        image = pyvips.Image.bandjoin([image] * RGB_CHANNELS)
    if image.format != "uchar":
        image = image.cast("uchar")
    return image


def _vips_to_array(image: Any) -> np.ndarray:
    mem = image.write_to_memory()
    array = np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, image.bands)
    array = array.copy()
    if array.shape[2] != RGB_CHANNELS:
        raise RuntimeError(f"Unsupported band count after conversion: {array.shape[2]}")
    return array


def _array_to_vips(pixels: np.ndarray) -> Any:
    if pixels.ndim != 3 or pixels.shape[2] != RGB_CHANNELS:
        raise ValueError("expected RGB numpy array with shape (h, w, 3)")
    h, w, _ = pixels.shape
    if h <= 0 or w <= 0:
        raise ValueError("cannot encode an empty pixel buffer")
    if pixels.dtype != np.uint8:
        pixels = pixels.astype(np.uint8)
    pyvips = _get_pyvips_module()
    # pyvips expects a contiguous bytes buffer in C order
    img = pyvips.Image.new_from_memory(np.ascontiguousarray(pixels).tobytes(), w, h, RGB_CHANNELS, "uchar")
    return img.copy(interpretation="srgb")


def decode_file(path: str) -> np.ndarray:
    """Decode ``path`` into an (h, w, 3) uint8 array.

    Raises:
        DecodeError: unreadable, malformed or unsupported file
    """
    try:
        pyvips = _get_pyvips_module()
        image = pyvips.Image.new_from_file(path, access="sequential")
        image = _to_rgb_uchar(image)
        array = _vips_to_array(image)
    except Exception as e:
        _logger.debug("decode failed: %s: %s", path, e)
        raise DecodeError(path, str(e)) from e
    if array.shape[0] <= 0 or array.shape[1] <= 0:
        raise DecodeError(path, "decoded image is empty")
    return array


def decode_image(file_path: str) -> tuple[str, object | None, str | None]:
    """Process-pool friendly wrapper around ``decode_file``.

    Returns (path, array|None, error|None).
    """
    try:
        return file_path, decode_file(file_path), None
    except DecodeError as e:
        return file_path, None, e.reason


def encode_to_bytes(pixels: np.ndarray, fmt: str = FORMAT_JPEG, quality: int = 90) -> bytes:
    """Encode an RGB array into ``fmt`` ("jpeg" or "png")."""
    fmt = (fmt or "").lower()
    if fmt == "jpg":
        fmt = FORMAT_JPEG
    suffix = _SUFFIXES.get(fmt)
    if suffix is None:
        raise EncodeError(f"unsupported output format {fmt!r}")
    try:
        img = _array_to_vips(pixels)
        if fmt == FORMAT_JPEG:
            out = img.write_to_buffer(suffix, Q=int(quality))
        else:
            out = img.write_to_buffer(suffix)
    except Exception as e:
        _logger.error("encode to %s failed: %s", fmt, e, exc_info=True)
        raise EncodeError(f"cannot encode {fmt}: {e}") from e
    # Normalize to bytes in case pyvips returns a memoryview-like object
    return out if isinstance(out, bytes) else bytes(out)


def resize_pixels(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Bilinear resample to exactly ``width`` x ``height``."""
    if width <= 0 or height <= 0:
        raise ValueError(f"target size must be positive, got {width}x{height}")
    h, w = pixels.shape[0], pixels.shape[1]
    img = _array_to_vips(pixels)
    out = img.resize(width / w, vscale=height / h, kernel="linear")
    if out.width != width or out.height != height:
        # Rounding in libvips can leave the result one pixel short or long.
        out = out.gravity("north-west", width, height, extend="copy")
    return _vips_to_array(_to_rgb_uchar(out))
