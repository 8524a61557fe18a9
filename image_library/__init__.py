"""Image transform & metadata pipeline.

Qt-free pieces (crop, adjust, metadata, descriptions) can be imported without
PySide6; the loader, events and the `app` facade need it.
"""

from .errors import (
    CommitIncomplete,
    CorruptDirectory,
    DecodeError,
    DirectoryOverflow,
    EmptyRegion,
    EncodeError,
    ImageLibraryError,
    InvalidRegion,
    MetadataError,
    PersistenceError,
    RegionError,
    UnsupportedContainer,
)

__version__ = "0.1.0"

__all__ = [
    "CommitIncomplete",
    "CorruptDirectory",
    "DecodeError",
    "DirectoryOverflow",
    "EmptyRegion",
    "EncodeError",
    "ImageLibraryError",
    "InvalidRegion",
    "MetadataError",
    "PersistenceError",
    "RegionError",
    "UnsupportedContainer",
    "__version__",
]
