"""Persisted path -> description index.

Independent of the description embedded in the files themselves; the two
stores are not reconciled.

File format (internal): UTF-8 JSON ``{"version": 1, "descriptions": {path: text}}``.
"""

from __future__ import annotations

import contextlib
import json
import os
import threading
from collections.abc import Iterator
from pathlib import Path

from .errors import PersistenceError
from .logger import get_logger
from .path_utils import abs_path_str, index_key, sibling_temp_path

_logger = get_logger("descriptions")

FORMAT_VERSION = 1


class DescriptionIndex:
    def __init__(self, entries: dict[str, str] | None = None) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, str] = {}
        for path, text in (entries or {}).items():
            self.put(path, text)

    # ---- mapping ----
    def put(self, path: str | Path, text: str) -> None:
        if not isinstance(text, str):
            raise TypeError(f"description must be str, got {type(text).__name__}")
        with self._lock:
            self._entries[index_key(path)] = text

    def get(self, path: str | Path, default: str = "") -> str:
        with self._lock:
            return self._entries.get(index_key(path), default)

    def remove(self, path: str | Path) -> bool:
        with self._lock:
            return self._entries.pop(index_key(path), None) is not None

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        with self._lock:
            return index_key(path) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.as_dict())

    def items(self) -> list[tuple[str, str]]:
        with self._lock:
            return list(self._entries.items())

    def as_dict(self) -> dict[str, str]:
        with self._lock:
            return dict(self._entries)

    # ---- persistence ----
    @staticmethod
    def _read_file(file: str | Path) -> dict[str, str] | None:
        path = abs_path_str(file)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            _logger.error("description index load failed: %s: %s", path, e)
            raise PersistenceError(f"cannot read description index {path}: {e}") from e

        descriptions = data.get("descriptions") if isinstance(data, dict) else None
        if not isinstance(descriptions, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in descriptions.items()
        ):
            _logger.error("description index malformed: %s", path)
            raise PersistenceError(f"description index {path} is malformed")
        return {index_key(k): v for k, v in descriptions.items()}

    def load(self, file: str | Path) -> int:
        """Merge entries from ``file``; keys already in memory win.

        A missing file is not an error. Returns the number of entries added.

        Raises:
            PersistenceError: the file exists but cannot be read or parsed;
                the in-memory map is left unchanged.
        """
        loaded = self._read_file(file)
        if loaded is None:
            _logger.debug("description index not found: %s", file)
            return 0
        added = 0
        with self._lock:
            for key, text in loaded.items():
                if key not in self._entries:
                    self._entries[key] = text
                    added += 1
        _logger.debug("description index merged: %s (+%d, %d on disk)", file, added, len(loaded))
        return added

    def load_replacing(self, file: str | Path) -> int:
        """Replace the in-memory map with the contents of ``file`` (startup)."""
        loaded = self._read_file(file)
        with self._lock:
            self._entries = loaded or {}
            count = len(self._entries)
        _logger.debug("description index loaded: %s (%d entries)", file, count)
        return count

    def save(self, file: str | Path) -> None:
        """Write the full map to ``file`` (temp file + atomic replace).

        Raises:
            PersistenceError: on any I/O failure; the in-memory map stays valid.
        """
        path = abs_path_str(file)
        snapshot = self.as_dict()
        tmp = sibling_temp_path(path)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({"version": FORMAT_VERSION, "descriptions": snapshot}, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except (OSError, UnicodeError) as e:
            _logger.error("description index save failed: %s: %s", path, e)
            with contextlib.suppress(OSError):
                os.remove(tmp)
            raise PersistenceError(f"cannot write description index {path}: {e}") from e
        _logger.debug("description index saved: %s (%d entries)", path, len(snapshot))
