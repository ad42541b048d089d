"""Durable key/value storage for client state.

Values are strings, like browser local storage. ``JsonFileStorage`` keeps
all keys in one JSON object on disk and rewrites it atomically.
"""

import os
from pathlib import Path
from typing import Protocol

import orjson


class KeyValueStorage(Protocol):
    """String key/value store. Implementations may raise OSError or ValueError."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class JsonFileStorage:
    """Key/value storage persisted as a single JSON file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def get_item(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def _read(self) -> dict:
        """Raises orjson.JSONDecodeError (a ValueError) on a corrupt file."""
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        if not raw.strip():
            return {}
        data = orjson.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.path} does not hold a JSON object")
        return data

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp_path.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
            os.replace(tmp_path, self.path)
        finally:
            tmp_path.unlink(missing_ok=True)
