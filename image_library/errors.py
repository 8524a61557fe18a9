"""Error taxonomy of the transform & metadata pipeline.

None of these are fatal: they are reported to the invoking layer, which may
retry with corrected input.
"""

from __future__ import annotations


class ImageLibraryError(Exception):
    """Base class for every pipeline error."""


class DecodeError(ImageLibraryError):
    """The codec could not turn a file into a pixel buffer."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot decode {path}: {reason}")
        self.path = path
        self.reason = reason


class EncodeError(ImageLibraryError):
    """The codec could not write a pixel buffer in the requested format."""


class RegionError(ImageLibraryError, ValueError):
    """A crop region violates a caller precondition."""


class InvalidRegion(RegionError):
    """Region has no area or lies outside the source buffer."""


class EmptyRegion(RegionError):
    """A display rectangle mapped to a degenerate source rectangle."""


class MetadataError(ImageLibraryError):
    """Base class for tag directory failures. The source is never touched."""


class UnsupportedContainer(MetadataError):
    """The file format has no tag directory this codec can handle."""


class CorruptDirectory(MetadataError):
    """A tag directory is present but malformed."""


class DirectoryOverflow(MetadataError):
    """The serialized directory does not fit in the container segment."""


class PersistenceError(ImageLibraryError):
    """The description index could not be read or written."""


class CommitIncomplete(ImageLibraryError, OSError):
    """The temporary artifact was written but could not replace the destination."""

    def __init__(self, destination: str, reason: str) -> None:
        super().__init__(f"commit to {destination} did not complete: {reason}")
        self.destination = destination
        self.reason = reason
