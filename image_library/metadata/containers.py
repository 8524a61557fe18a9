"""Locate and replace the EXIF payload inside image containers.

JPEG keeps the directory in an APP1 segment starting with ``Exif\\0\\0``;
WebP keeps it in an ``EXIF`` RIFF chunk. Everything else in the file, the
entropy-coded pixel stream included, is copied through unchanged.
"""

from __future__ import annotations

import io
import struct

import piexif

from image_library.errors import CorruptDirectory, DirectoryOverflow, UnsupportedContainer
from image_library.logger import get_logger

_logger = get_logger("containers")

EXIF_HEADER = b"Exif\x00\x00"
JPEG_SOI = b"\xff\xd8"
JPEG = "jpeg"
WEBP = "webp"

_APP0 = 0xE0
_APP1 = 0xE1
_SOS = 0xDA
_EOI = 0xD9
_TEM = 0x01
# Largest TIFF payload an APP1 segment can carry: 0xFFFF minus the length
# field itself and the Exif header.
MAX_JPEG_PAYLOAD = 0xFFFF - 2 - len(EXIF_HEADER)


def detect_container(data: bytes) -> str:
    if data[:2] == JPEG_SOI:
        return JPEG
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return WEBP
    raise UnsupportedContainer("file is neither JPEG nor WebP; no tag directory to edit")


def _jpeg_segments(data: bytes) -> list[tuple[int, int, int]]:
    """Return (marker, start, end) for every segment before the scan data."""
    segments: list[tuple[int, int, int]] = []
    pos = 2
    n = len(data)
    while pos < n:
        if data[pos] != 0xFF:
            raise CorruptDirectory(f"expected JPEG marker at offset {pos}")
        # Fill bytes
        while pos + 1 < n and data[pos + 1] == 0xFF:
            pos += 1
        if pos + 1 >= n:
            raise CorruptDirectory("JPEG ends inside a marker")
        marker = data[pos + 1]
        if marker in (_SOS, _EOI):
            break
        if marker == _TEM or 0xD0 <= marker <= 0xD7:
            segments.append((marker, pos, pos + 2))
            pos += 2
            continue
        if pos + 4 > n:
            raise CorruptDirectory(f"JPEG segment header truncated at offset {pos}")
        (length,) = struct.unpack(">H", data[pos + 2 : pos + 4])
        end = pos + 2 + length
        if length < 2 or end > n:
            raise CorruptDirectory(f"JPEG segment at offset {pos} has bad length {length}")
        segments.append((marker, pos, end))
        pos = end
    return segments


def _is_exif_app1(data: bytes, marker: int, start: int) -> bool:
    return marker == _APP1 and data[start + 4 : start + 4 + len(EXIF_HEADER)] == EXIF_HEADER


def _webp_chunks(data: bytes) -> list[tuple[bytes, int, int]]:
    """Return (fourcc, payload_start, payload_end) for each RIFF chunk."""
    chunks: list[tuple[bytes, int, int]] = []
    pos = 12
    n = len(data)
    while pos + 8 <= n:
        fourcc = bytes(data[pos : pos + 4])
        (size,) = struct.unpack("<L", data[pos + 4 : pos + 8])
        start = pos + 8
        end = start + size
        if end > n:
            raise CorruptDirectory(f"WebP chunk {fourcc!r} runs past end of file")
        chunks.append((fourcc, start, end))
        pos = end + (size & 1)
    return chunks


def extract_exif(data: bytes) -> bytes | None:
    """Return the TIFF payload of the embedded directory, or None if there is none.

    Raises:
        UnsupportedContainer: not a JPEG or WebP file
        CorruptDirectory: the container structure is broken
    """
    kind = detect_container(data)
    if kind == JPEG:
        for marker, start, end in _jpeg_segments(data):
            if _is_exif_app1(data, marker, start):
                return bytes(data[start + 4 + len(EXIF_HEADER) : end])
        return None

    for fourcc, start, end in _webp_chunks(data):
        if fourcc == b"EXIF":
            payload = bytes(data[start:end])
            # Some writers keep the JPEG-style header inside the chunk.
            if payload.startswith(EXIF_HEADER):
                payload = payload[len(EXIF_HEADER) :]
            return payload
    return None


def _replace_jpeg_exif(data: bytes, payload: bytes) -> bytes:
    if len(payload) > MAX_JPEG_PAYLOAD:
        raise DirectoryOverflow(f"tag directory of {len(payload)} bytes exceeds the APP1 limit of {MAX_JPEG_PAYLOAD}")
    segment = b"\xff\xe1" + struct.pack(">H", 2 + len(EXIF_HEADER) + len(payload)) + EXIF_HEADER + payload

    segments = _jpeg_segments(data)
    for marker, start, end in segments:
        if _is_exif_app1(data, marker, start):
            _logger.debug("replacing APP1 exif segment at %d (%d -> %d bytes)", start, end - start, len(segment))
            return data[:start] + segment + data[end:]

    # New segment goes right after SOI, or after a leading JFIF APP0.
    insert_at = 2
    if segments and segments[0][0] == _APP0:
        insert_at = segments[0][2]
    _logger.debug("inserting APP1 exif segment at %d (%d bytes)", insert_at, len(segment))
    return data[:insert_at] + segment + data[insert_at:]


def _replace_webp_exif(data: bytes, payload: bytes) -> bytes:
    out = io.BytesIO()
    try:
        piexif.insert(EXIF_HEADER + payload, data, out)
    except (piexif.InvalidImageDataError, ValueError, struct.error) as e:
        raise CorruptDirectory(f"cannot embed EXIF chunk in WebP: {e}") from e
    return out.getvalue()


def replace_exif(data: bytes, payload: bytes) -> bytes:
    """Return a copy of ``data`` whose directory payload is ``payload``."""
    kind = detect_container(data)
    if kind == JPEG:
        return _replace_jpeg_exif(data, payload)
    return _replace_webp_exif(data, payload)


def scan_data_offset(data: bytes) -> int | None:
    """Offset of the JPEG SOS marker (start of the compressed pixel stream)."""
    if detect_container(data) != JPEG:
        return None
    segments = _jpeg_segments(data)
    pos = segments[-1][2] if segments else 2
    while pos < len(data) and data[pos] == 0xFF and pos + 1 < len(data) and data[pos + 1] == 0xFF:
        pos += 1
    return pos
