"""TIFF/EXIF tag directory model: parse and re-serialize without loss.

Entries are kept as raw ``(tag, type, count, value bytes)`` in the byte order
of the source, so tags this package never interprets are written back exactly
as they were read. Only the offsets that tie directories together (the
Exif/GPS/Interop pointers, out-of-line value offsets and the IFD1 thumbnail
offset) are recomputed on write.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

import piexif

from image_library.errors import CorruptDirectory
from image_library.logger import get_logger

_logger = get_logger("tiff")

LITTLE_ENDIAN = b"II"
BIG_ENDIAN = b"MM"
TIFF_MAGIC = 42
HEADER_SIZE = 8
ENTRY_SIZE = 12
INLINE_SIZE = 4
# Guard against pathological files; real EXIF blocks stay far below this.
MAX_ENTRIES = 4096

TYPE_SIZES: dict[int, int] = {
    piexif.TYPES.Byte: 1,
    piexif.TYPES.Ascii: 1,
    piexif.TYPES.Short: 2,
    piexif.TYPES.Long: 4,
    piexif.TYPES.Rational: 8,
    piexif.TYPES.SByte: 1,
    piexif.TYPES.Undefined: 1,
    piexif.TYPES.SShort: 2,
    piexif.TYPES.SLong: 4,
    piexif.TYPES.SRational: 8,
    piexif.TYPES.Float: 4,
    piexif.TYPES.DFloat: 8,
    13: 4,  # IFD
}

EXIF_POINTER = piexif.ImageIFD.ExifTag
GPS_POINTER = piexif.ImageIFD.GPSTag
INTEROP_POINTER = piexif.ExifIFD.InteroperabilityTag
THUMBNAIL_OFFSET = piexif.ImageIFD.JPEGInterchangeFormat
THUMBNAIL_LENGTH = piexif.ImageIFD.JPEGInterchangeFormatLength

POINTER_TAGS = frozenset({EXIF_POINTER, GPS_POINTER, INTEROP_POINTER})


@dataclass
class Entry:
    tag: int
    type: int
    count: int
    value: bytes
    # False for entries whose type size is unknown: ``value`` then holds the
    # raw 4-byte value/offset field and is written back verbatim.
    sized: bool = True


@dataclass
class Directory:
    entries: list[Entry] = field(default_factory=list)

    def get(self, tag: int) -> Entry | None:
        for e in self.entries:
            if e.tag == tag:
                return e
        return None

    def set(self, entry: Entry) -> None:
        """Replace the entry with the same tag, or insert it in tag order."""
        for i, e in enumerate(self.entries):
            if e.tag == entry.tag:
                self.entries[i] = entry
                return
        for i, e in enumerate(self.entries):
            if e.tag > entry.tag:
                self.entries.insert(i, entry)
                return
        self.entries.append(entry)

    def remove(self, tag: int) -> bool:
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.tag != tag]
        return len(self.entries) != before

    def tags(self) -> list[int]:
        return [e.tag for e in self.entries]


@dataclass
class TiffDirectory:
    byte_order: str = "<"
    ifd0: Directory = field(default_factory=Directory)
    exif: Directory | None = None
    gps: Directory | None = None
    interop: Directory | None = None
    ifd1: Directory | None = None
    thumbnail: bytes | None = None

    def directory(self, name: str) -> Directory | None:
        return {
            "0th": self.ifd0,
            "Exif": self.exif,
            "GPS": self.gps,
            "Interop": self.interop,
            "1st": self.ifd1,
        }.get(name)

    def get_or_create_exif(self) -> Directory:
        if self.exif is None:
            self.exif = Directory()
        return self.exif

    # ---- value helpers (in this directory's byte order) ----
    def pack_ascii(self, tag: int, text: str) -> Entry:
        raw = text.encode("ascii") + b"\x00"
        return Entry(tag, piexif.TYPES.Ascii, len(raw), raw)

    def pack_undefined(self, tag: int, data: bytes) -> Entry:
        return Entry(tag, piexif.TYPES.Undefined, len(data), bytes(data))

    def pack_uint(self, tag: int, value: int) -> Entry:
        if 0 <= value <= 0xFFFF:
            return Entry(tag, piexif.TYPES.Short, 1, struct.pack(self.byte_order + "H", value))
        return Entry(tag, piexif.TYPES.Long, 1, struct.pack(self.byte_order + "L", value))

    def unpack_uint(self, entry: Entry | None) -> int | None:
        if entry is None or entry.count < 1 or not entry.sized:
            return None
        bo = self.byte_order
        if entry.type == piexif.TYPES.Short:
            return struct.unpack(bo + "H", entry.value[:2])[0]
        if entry.type in (piexif.TYPES.Long, 13):
            return struct.unpack(bo + "L", entry.value[:4])[0]
        if entry.type == piexif.TYPES.Byte:
            return entry.value[0]
        return None


def _unpack(fmt: str, data: bytes, offset: int) -> tuple:
    size = struct.calcsize(fmt)
    if offset < 0 or offset + size > len(data):
        raise CorruptDirectory(f"read of {size} bytes at offset {offset} runs past end ({len(data)} bytes)")
    return struct.unpack_from(fmt, data, offset)


def _read_ifd(data: bytes, offset: int, bo: str, seen: set[int]) -> tuple[Directory, int]:
    if offset in seen:
        raise CorruptDirectory(f"directory loop at offset {offset}")
    seen.add(offset)
    (count,) = _unpack(bo + "H", data, offset)
    if count > MAX_ENTRIES:
        raise CorruptDirectory(f"directory at {offset} claims {count} entries")

    entries: list[Entry] = []
    pos = offset + 2
    for _ in range(count):
        tag, typ, n = _unpack(bo + "HHL", data, pos)
        field_bytes = data[pos + 8 : pos + 8 + INLINE_SIZE]
        if len(field_bytes) != INLINE_SIZE:
            raise CorruptDirectory(f"truncated entry for tag {tag} at {pos}")
        size = TYPE_SIZES.get(typ)
        if size is None:
            # With more than 4 values the field must be an offset, which re-layout would leave dangling.
            if n > INLINE_SIZE:
                _logger.warning("dropping tag %d: unknown type %d with %d values at offset %d", tag, typ, n, pos)
            else:
                _logger.warning("keeping tag %d of unknown type %d as a raw field", tag, typ)
                entries.append(Entry(tag, typ, n, bytes(field_bytes), sized=False))
        else:
            total = size * n
            if total <= INLINE_SIZE:
                value = bytes(field_bytes[:total])
            else:
                (value_offset,) = struct.unpack(bo + "L", field_bytes)
                if value_offset + total > len(data):
                    raise CorruptDirectory(
                        f"tag {tag} value ({total} bytes at {value_offset}) runs past end ({len(data)} bytes)"
                    )
                value = bytes(data[value_offset : value_offset + total])
            entries.append(Entry(tag, typ, n, value))
        pos += ENTRY_SIZE

    (next_offset,) = _unpack(bo + "L", data, pos)
    return Directory(entries), next_offset


def _pointer(tiff: TiffDirectory, parent: Directory, tag: int) -> int | None:
    entry = parent.get(tag)
    if entry is None:
        return None
    value = tiff.unpack_uint(entry)
    if value is None or value == 0:
        return None
    return value


def parse(data: bytes) -> TiffDirectory:
    """Parse a TIFF structure (the payload after ``Exif\\0\\0``).

    Raises:
        CorruptDirectory: bad header, offsets outside the payload or loops.
    """
    if len(data) < HEADER_SIZE:
        raise CorruptDirectory(f"TIFF header truncated ({len(data)} bytes)")
    mark = bytes(data[:2])
    if mark == LITTLE_ENDIAN:
        bo = "<"
    elif mark == BIG_ENDIAN:
        bo = ">"
    else:
        raise CorruptDirectory(f"unknown byte order mark {mark!r}")
    magic, ifd0_offset = _unpack(bo + "HL", data, 2)
    if magic != TIFF_MAGIC:
        raise CorruptDirectory(f"bad TIFF magic {magic}")

    seen: set[int] = set()
    tiff = TiffDirectory(byte_order=bo)
    tiff.ifd0, next_offset = _read_ifd(data, ifd0_offset, bo, seen)

    exif_offset = _pointer(tiff, tiff.ifd0, EXIF_POINTER)
    if exif_offset is not None:
        tiff.exif, _ = _read_ifd(data, exif_offset, bo, seen)
        interop_offset = _pointer(tiff, tiff.exif, INTEROP_POINTER)
        if interop_offset is not None:
            tiff.interop, _ = _read_ifd(data, interop_offset, bo, seen)

    gps_offset = _pointer(tiff, tiff.ifd0, GPS_POINTER)
    if gps_offset is not None:
        tiff.gps, _ = _read_ifd(data, gps_offset, bo, seen)

    if next_offset:
        tiff.ifd1, _ = _read_ifd(data, next_offset, bo, seen)
        thumb_offset = _pointer(tiff, tiff.ifd1, THUMBNAIL_OFFSET)
        thumb_length = tiff.unpack_uint(tiff.ifd1.get(THUMBNAIL_LENGTH))
        if thumb_offset is not None and thumb_length:
            if thumb_offset + thumb_length > len(data):
                raise CorruptDirectory("thumbnail runs past end of directory")
            tiff.thumbnail = bytes(data[thumb_offset : thumb_offset + thumb_length])

    _logger.debug(
        "parsed tiff bo=%s ifd0=%d exif=%s gps=%s interop=%s ifd1=%s thumb=%s",
        bo,
        len(tiff.ifd0.entries),
        None if tiff.exif is None else len(tiff.exif.entries),
        None if tiff.gps is None else len(tiff.gps.entries),
        None if tiff.interop is None else len(tiff.interop.entries),
        None if tiff.ifd1 is None else len(tiff.ifd1.entries),
        None if tiff.thumbnail is None else len(tiff.thumbnail),
    )
    return tiff


def _data_size(entry: Entry) -> int:
    if not entry.sized or len(entry.value) <= INLINE_SIZE:
        return 0
    n = len(entry.value)
    return n + (n & 1)


def _ifd_size(directory: Directory) -> int:
    return 2 + ENTRY_SIZE * len(directory.entries) + 4 + sum(_data_size(e) for e in directory.entries)


def _write_ifd(directory: Directory, offset: int, next_offset: int, bo: str) -> bytes:
    out = bytearray(struct.pack(bo + "H", len(directory.entries)))
    data_area = bytearray()
    data_start = offset + 2 + ENTRY_SIZE * len(directory.entries) + 4
    for e in directory.entries:
        out += struct.pack(bo + "HHL", e.tag, e.type, e.count)
        if not e.sized:
            out += e.value
        elif len(e.value) <= INLINE_SIZE:
            out += e.value.ljust(INLINE_SIZE, b"\x00")
        else:
            out += struct.pack(bo + "L", data_start + len(data_area))
            data_area += e.value
            if len(e.value) & 1:
                data_area += b"\x00"
    out += struct.pack(bo + "L", next_offset)
    return bytes(out + data_area)


def _set_pointer(tiff: TiffDirectory, parent: Directory, tag: int, offset: int) -> None:
    parent.set(Entry(tag, piexif.TYPES.Long, 1, struct.pack(tiff.byte_order + "L", offset)))


def serialize(tiff: TiffDirectory) -> bytes:
    """Write the directory back as a TIFF structure.

    Layout: header, IFD0, Exif, Interop, GPS, IFD1, thumbnail. Pointer tags
    are (re)created for every sub-directory that is present and dropped for
    those that are not.
    """
    bo = tiff.byte_order
    mark = LITTLE_ENDIAN if bo == "<" else BIG_ENDIAN

    # Drop dangling pointers first so sizes below are final.
    if tiff.exif is None:
        tiff.ifd0.remove(EXIF_POINTER)
    if tiff.gps is None:
        tiff.ifd0.remove(GPS_POINTER)
    if tiff.exif is not None and tiff.interop is None:
        tiff.exif.remove(INTEROP_POINTER)
    if tiff.ifd1 is not None and tiff.thumbnail is None:
        tiff.ifd1.remove(THUMBNAIL_OFFSET)
        tiff.ifd1.remove(THUMBNAIL_LENGTH)

    # Placeholder pointers make every IFD its final size before offsets are computed.
    if tiff.exif is not None:
        _set_pointer(tiff, tiff.ifd0, EXIF_POINTER, 0)
        if tiff.interop is not None:
            _set_pointer(tiff, tiff.exif, INTEROP_POINTER, 0)
    if tiff.gps is not None:
        _set_pointer(tiff, tiff.ifd0, GPS_POINTER, 0)
    if tiff.ifd1 is not None and tiff.thumbnail is not None:
        _set_pointer(tiff, tiff.ifd1, THUMBNAIL_OFFSET, 0)
        tiff.ifd1.set(Entry(THUMBNAIL_LENGTH, piexif.TYPES.Long, 1, struct.pack(bo + "L", len(tiff.thumbnail))))

    order: list[tuple[str, Directory]] = [("0th", tiff.ifd0)]
    if tiff.exif is not None:
        order.append(("Exif", tiff.exif))
        if tiff.interop is not None:
            order.append(("Interop", tiff.interop))
    if tiff.gps is not None:
        order.append(("GPS", tiff.gps))
    if tiff.ifd1 is not None:
        order.append(("1st", tiff.ifd1))

    offsets: dict[str, int] = {}
    cursor = HEADER_SIZE
    for name, directory in order:
        offsets[name] = cursor
        cursor += _ifd_size(directory)
    thumb_offset = cursor

    if "Exif" in offsets:
        _set_pointer(tiff, tiff.ifd0, EXIF_POINTER, offsets["Exif"])
    if "Interop" in offsets and tiff.exif is not None:
        _set_pointer(tiff, tiff.exif, INTEROP_POINTER, offsets["Interop"])
    if "GPS" in offsets:
        _set_pointer(tiff, tiff.ifd0, GPS_POINTER, offsets["GPS"])
    if tiff.ifd1 is not None and tiff.thumbnail is not None:
        _set_pointer(tiff, tiff.ifd1, THUMBNAIL_OFFSET, thumb_offset)

    out = bytearray(mark + struct.pack(bo + "HL", TIFF_MAGIC, HEADER_SIZE))
    for name, directory in order:
        next_offset = offsets.get("1st", 0) if name == "0th" else 0
        out += _write_ifd(directory, offsets[name], next_offset, bo)
    if tiff.ifd1 is not None and tiff.thumbnail is not None:
        out += tiff.thumbnail
    return bytes(out)


def new_directory(byte_order: str = "<") -> TiffDirectory:
    return TiffDirectory(byte_order=byte_order)
