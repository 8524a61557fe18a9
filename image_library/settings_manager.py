from __future__ import annotations

import json
import os
from typing import Any

from .logger import get_logger
from .path_utils import abs_path_str

_logger = get_logger("settings")

SETTINGS_ENV = "IMAGE_LIBRARY_SETTINGS"
DEFAULT_SETTINGS_NAME = "image_library_settings.json"


class SettingsManager:
    def __init__(self, settings_path: str):
        self.settings_path = abs_path_str(settings_path)
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "default_container_width": 500,
        "default_container_height": 400,
        "min_crop_size": 10,
        "jpeg_quality": 90,
        "zoom_step_in": 1.25,
        "zoom_step_out": 0.8,
        "paint_width": 400,
        "paint_height": 400,
        "description_index_name": "image_descriptions.json",
    }

    @classmethod
    def from_env(cls, fallback_dir: str | None = None) -> SettingsManager:
        path = os.getenv(SETTINGS_ENV)
        if not path:
            path = os.path.join(fallback_dir or os.getcwd(), DEFAULT_SETTINGS_NAME)
        return cls(path)

    def load(self) -> None:
        try:
            if os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.settings_path), exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except OSError as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    @property
    def description_index_path(self) -> str:
        """Explicit ``description_index_path`` or the default name beside the settings file."""
        val = self.get("description_index_path")
        if isinstance(val, str) and val.strip():
            return abs_path_str(val)
        name = str(self.get("description_index_name"))
        return abs_path_str(os.path.join(os.path.dirname(self.settings_path), name))

    @property
    def default_container_size(self) -> tuple[int, int]:
        w = _positive_int(self.get("default_container_width"), self.DEFAULTS["default_container_width"])
        h = _positive_int(self.get("default_container_height"), self.DEFAULTS["default_container_height"])
        return w, h

    @property
    def min_crop_size(self) -> int:
        return _positive_int(self.get("min_crop_size"), self.DEFAULTS["min_crop_size"])

    @property
    def jpeg_quality(self) -> int:
        q = _positive_int(self.get("jpeg_quality"), self.DEFAULTS["jpeg_quality"])
        return max(1, min(100, q))

    @property
    def zoom_steps(self) -> tuple[float, float]:
        try:
            zin = float(self.get("zoom_step_in"))
            zout = float(self.get("zoom_step_out"))
        except (TypeError, ValueError):
            _logger.warning("invalid zoom steps in settings; using defaults")
            return self.DEFAULTS["zoom_step_in"], self.DEFAULTS["zoom_step_out"]
        if zin <= 0 or zout <= 0:
            return self.DEFAULTS["zoom_step_in"], self.DEFAULTS["zoom_step_out"]
        return zin, zout

    @property
    def paint_size(self) -> tuple[int, int]:
        w = _positive_int(self.get("paint_width"), self.DEFAULTS["paint_width"])
        h = _positive_int(self.get("paint_height"), self.DEFAULTS["paint_height"])
        return w, h


def _positive_int(value: Any, fallback: int) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        _logger.warning("invalid setting value %r; using %s", value, fallback)
        return fallback
    return v if v > 0 else fallback
