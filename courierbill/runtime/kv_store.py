"""Durable key-value storage backed by one JSON document.

Every key is one logical collection. All keys live in a single file so a
mutation that touches several collections (history and recycle bin, for
instance) lands in one atomic ``os.replace``.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from courierbill.runtime.logging import get_logger

logger = get_logger(__name__)


class JsonKeyValueStore:
    """Thread-safe JSON key-value store with atomic whole-file writes."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock = threading.RLock()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise RuntimeError(f"Record file {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise RuntimeError(f"Record file {self.path} does not hold a JSON object")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        with self.lock:
            return self._data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self.put_many({key: value})

    def delete(self, key: str) -> None:
        self.put_many({key: None})

    def put_many(self, values: Mapping[str, Any]) -> None:
        """Write several keys at once; a ``None`` value removes the key."""
        with self.lock:
            updated = dict(self._data)
            for key, value in values.items():
                if value is None:
                    updated.pop(key, None)
                else:
                    updated[key] = value
            self._write(updated)
            self._data = updated

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".records-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %s (%d keys)", self.path, len(data))
