"""Path normalization utilities.

- Use absolute paths when interacting with the filesystem.
- Use a stable, normalized key for the description index (absolute path with
  drive letter normalization on Windows).

Keep this module free of Qt dependencies.
"""

from __future__ import annotations

from pathlib import Path

_DRIVE_PREFIX_LEN = 2


def _normalize_drive_letter(path_str: str) -> str:
    # Normalize drive letter casing on Windows ("c:\\" -> "C:\\").
    if len(path_str) >= _DRIVE_PREFIX_LEN and path_str[1] == ":":
        return path_str[0].upper() + path_str[1:]
    return path_str


def abs_path(path: str | Path) -> Path:
    """Return an absolute path without requiring that it exists."""
    p = Path(path).expanduser()
    try:
        # strict=False avoids exceptions for non-existent paths.
        return p.resolve(strict=False)
    except OSError:
        return p.absolute()


def abs_path_str(path: str | Path) -> str:
    """Absolute, OS-native path string (Windows uses backslashes)."""
    return _normalize_drive_letter(str(abs_path(path)))


def index_key(path: str | Path) -> str:
    """Canonical key for a file in the description index."""
    return abs_path_str(path)


def sibling_temp_path(path: str | Path, tag: str = "tmp") -> Path:
    """Temporary path in the same directory as ``path``.

    Living in the same directory keeps the final ``os.replace`` on one filesystem.
    """
    p = abs_path(path)
    return p.with_name(f".{p.name}.{tag}")
