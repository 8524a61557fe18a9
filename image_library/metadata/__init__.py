"""Embedded tag directory (EXIF) read and lossless rewrite.

Keep this package free of Qt and pyvips: it only moves bytes.
"""

from .codec import (
    MetadataPatch,
    MetadataRecord,
    format_exif_datetime,
    parse_exif_datetime,
    read_metadata,
    read_record,
    read_tag,
    rewrite,
)

__all__ = [
    "MetadataPatch",
    "MetadataRecord",
    "format_exif_datetime",
    "parse_exif_datetime",
    "read_metadata",
    "read_record",
    "read_tag",
    "rewrite",
]
