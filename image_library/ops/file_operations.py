"""Headless file operation utilities.

Writes go to a temporary sibling first and are moved into place with
``os.replace`` so a destination is either the old file or the complete new
one. UI concerns (confirmation dialogs, prompts) do not live here.
"""

import contextlib
import os
from datetime import datetime
from pathlib import Path

from image_library.errors import CommitIncomplete
from image_library.logger import get_logger
from image_library.path_utils import abs_path, abs_path_str, sibling_temp_path

_logger = get_logger("file_operations")


def write_atomic(destination: str, data: bytes) -> str:
    """Write ``data`` to ``destination`` through a temporary file.

    Returns:
        Absolute destination path

    Raises:
        OSError: the temporary file could not be written (destination untouched)
        CommitIncomplete: the temporary file was written but the final replace
            failed; the temporary file is removed and the destination untouched
    """
    dest = abs_path_str(destination)
    tmp = sibling_temp_path(dest)
    _logger.debug("write_atomic: %s (%d bytes) via %s", dest, len(data), tmp)
    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        _logger.error("write failed: %s -> %s", tmp, e)
        with contextlib.suppress(OSError):
            os.remove(tmp)
        raise

    try:
        os.replace(tmp, dest)
    except OSError as e:
        _logger.error("replace failed: %s -> %s: %s", tmp, dest, e)
        with contextlib.suppress(OSError):
            os.remove(tmp)
        raise CommitIncomplete(dest, str(e)) from e
    _logger.debug("write_atomic success: %s", dest)
    return dest


def rename_file(path: str, new_name: str) -> str:
    """Rename a file within the same directory.

    The original extension is appended when ``new_name`` does not end with it.

    Args:
        path: Existing file path.
        new_name: New file name (basename only, no directories).

    Returns:
        The new absolute path as a string.
    """
    src = abs_path(path)
    nn = str(new_name).strip()
    if not nn:
        raise ValueError("new_name is empty")

    # Disallow path separators to avoid escaping the directory.
    if ("/" in nn) or ("\\" in nn):
        raise ValueError("new_name must be a basename (no path separators)")

    ext = src.suffix
    if ext and not nn.endswith(ext):
        nn = nn + ext

    if not src.exists():
        raise FileNotFoundError(str(src))
    dest = src.with_name(nn)
    if dest.exists():
        raise FileExistsError(str(dest))

    _logger.debug("rename: %s -> %s", src, dest)
    dest2 = src.rename(dest)
    return abs_path_str(dest2)


def set_modified_time(path: str, when: datetime) -> None:
    """Set access and modification time of ``path`` to ``when`` (local time if naive)."""
    ts = when.timestamp()
    os.utime(path, (ts, ts))


def read_bytes(path: str) -> bytes:
    return Path(path).read_bytes()
