"""Read and losslessly rewrite the embedded EXIF fields this tool understands.

Understood fields:

- capture date: Exif ``DateTimeOriginal`` (falls back to IFD0 ``DateTime`` on read)
- width/height: Exif ``PixelXDimension`` / ``PixelYDimension``
- description: Exif ``DeviceSettingDescription`` as raw UTF-8 bytes (falls
  back to IFD0 ``ImageDescription`` on read)

Every other tag passes through a rewrite untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import piexif

from image_library.errors import UnsupportedContainer
from image_library.logger import get_logger

from . import containers, tiff

_logger = get_logger("codec")

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

TAG_DATE_TIME_ORIGINAL = piexif.ExifIFD.DateTimeOriginal
TAG_DATE_TIME = piexif.ImageIFD.DateTime
TAG_PIXEL_X = piexif.ExifIFD.PixelXDimension
TAG_PIXEL_Y = piexif.ExifIFD.PixelYDimension
TAG_DESCRIPTION = piexif.ExifIFD.DeviceSettingDescription
TAG_IMAGE_DESCRIPTION = piexif.ImageIFD.ImageDescription


def format_exif_datetime(value: datetime) -> str:
    """``yyyy:MM:dd HH:mm:ss``; sub-second precision is dropped."""
    return value.strftime(EXIF_DATETIME_FORMAT)


def parse_exif_datetime(text: str) -> datetime:
    return datetime.strptime(text.strip(), EXIF_DATETIME_FORMAT)


@dataclass(frozen=True)
class MetadataRecord:
    capture_date: datetime | None = None
    width: int | None = None
    height: int | None = None
    description: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.capture_date is None and self.width is None and self.height is None and self.description is None


@dataclass(frozen=True)
class MetadataPatch:
    """Fields to add or overwrite. ``None`` leaves the tag alone.

    An empty description is written as an empty tag, so it reads back as ""
    and never falls through to the IFD0 ``ImageDescription``.
    """

    capture_date: datetime | None = None
    width: int | None = None
    height: int | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        for name in ("width", "height"):
            v = getattr(self, name)
            if v is not None and (isinstance(v, bool) or int(v) != v or v <= 0 or v > 0xFFFFFFFF):
                raise ValueError(f"{name} must be a positive integer, got {v!r}")

    @property
    def is_empty(self) -> bool:
        return self.capture_date is None and self.width is None and self.height is None and self.description is None


def _ascii_value(entry: tiff.Entry | None) -> str | None:
    if entry is None or not entry.sized:
        return None
    return entry.value.split(b"\x00", 1)[0].decode("ascii", errors="replace")


def _text_value(entry: tiff.Entry | None) -> str | None:
    if entry is None or not entry.sized:
        return None
    return entry.value.rstrip(b"\x00").decode("utf-8", errors="replace")


def _date_value(entry: tiff.Entry | None) -> datetime | None:
    text = _ascii_value(entry)
    if not text:
        return None
    try:
        return parse_exif_datetime(text)
    except ValueError:
        _logger.debug("ignoring unparsable exif date %r", text)
        return None


def record_from_directory(directory: tiff.TiffDirectory) -> MetadataRecord:
    exif = directory.exif or tiff.Directory()
    ifd0 = directory.ifd0

    capture = _date_value(exif.get(TAG_DATE_TIME_ORIGINAL))
    if capture is None:
        capture = _date_value(ifd0.get(TAG_DATE_TIME))

    description = _text_value(exif.get(TAG_DESCRIPTION))
    if description is None:
        description = _text_value(ifd0.get(TAG_IMAGE_DESCRIPTION))

    return MetadataRecord(
        capture_date=capture,
        width=directory.unpack_uint(exif.get(TAG_PIXEL_X)),
        height=directory.unpack_uint(exif.get(TAG_PIXEL_Y)),
        description=description,
    )


def read_directory(data: bytes) -> tiff.TiffDirectory | None:
    payload = containers.extract_exif(data)
    if payload is None:
        return None
    return tiff.parse(payload)


def read_record(data: bytes) -> MetadataRecord:
    """Extract the understood fields from an encoded image.

    A file without a directory, or without some of the tags, yields a record
    with those fields set to None.

    Raises:
        UnsupportedContainer: the format carries no directory this codec reads
        CorruptDirectory: the directory is present but malformed
    """
    directory = read_directory(data)
    if directory is None:
        return MetadataRecord()
    return record_from_directory(directory)


def read_tag(data: bytes, ifd: str, tag: int) -> tiff.Entry | None:
    """Raw entry for ``tag`` in directory ``ifd`` ("0th", "Exif", "GPS", "Interop", "1st")."""
    directory = read_directory(data)
    if directory is None:
        return None
    d = directory.directory(ifd)
    return None if d is None else d.get(tag)


def apply_patch(directory: tiff.TiffDirectory, patch: MetadataPatch) -> None:
    exif = directory.get_or_create_exif()
    if patch.capture_date is not None:
        exif.set(directory.pack_ascii(TAG_DATE_TIME_ORIGINAL, format_exif_datetime(patch.capture_date)))
    if patch.width is not None:
        exif.set(directory.pack_uint(TAG_PIXEL_X, int(patch.width)))
    if patch.height is not None:
        exif.set(directory.pack_uint(TAG_PIXEL_Y, int(patch.height)))
    if patch.description is not None:
        exif.set(directory.pack_undefined(TAG_DESCRIPTION, patch.description.encode("utf-8")))


def rewrite(source: bytes, patch: MetadataPatch) -> bytes:
    """Return ``source`` with ``patch`` applied to its tag directory.

    The directory is created when absent. Only the directory bytes change;
    every other segment of the file is copied as-is.

    Raises:
        UnsupportedContainer, CorruptDirectory, DirectoryOverflow
    """
    directory = read_directory(source)
    if directory is None:
        _logger.debug("no tag directory present; creating one")
        directory = tiff.new_directory()
    apply_patch(directory, patch)
    payload = tiff.serialize(directory)
    return containers.replace_exif(source, payload)


def read_metadata(path: str | Path) -> MetadataRecord:
    """Read the record of a file; unsupported containers give an empty record."""
    data = Path(path).read_bytes()
    try:
        return read_record(data)
    except UnsupportedContainer:
        _logger.debug("no tag directory support for %s", path)
        return MetadataRecord()
