"""Durable key/value preferences backed by a JSON file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Flat string/bool preferences, written through to disk on every change."""

    def __init__(self, file_path: Path) -> None:
        self.file_path = file_path
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._values: dict[str, Any] | None = None

    def _data(self) -> dict[str, Any]:
        if self._values is None:
            self._values = self._read()
        return self._values

    def _read(self) -> dict[str, Any]:
        if not self.file_path.exists():
            return {}
        try:
            payload = json.loads(self.file_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Preference file %s is corrupt; starting empty", self.file_path)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Preference file %s has an unexpected shape; starting empty", self.file_path)
            return {}
        return payload

    def _write(self) -> None:
        self.file_path.write_text(
            json.dumps(self._data(), ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )

    def keys(self) -> list[str]:
        return list(self._data())

    def has_key(self, key: str) -> bool:
        return key in self._data()

    def get_string(self, key: str, default: str = "") -> str:
        value = self._data().get(key)
        if value is None:
            return default
        return str(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._data().get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes"}
        return default

    def set_string(self, key: str, value: str) -> None:
        self._data()[key] = value
        self._write()

    def set_bool(self, key: str, value: bool) -> None:
        self._data()[key] = bool(value)
        self._write()

    def delete_key(self, key: str) -> None:
        self.delete_keys([key])

    def delete_keys(self, keys: list[str]) -> None:
        data = self._data()
        removed = [key for key in keys if key in data]
        for key in removed:
            del data[key]
        if removed:
            self._write()

    def reload(self) -> None:
        self._values = None
