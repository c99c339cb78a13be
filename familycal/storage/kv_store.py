"""Local key-value stores for notification flags and settings."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Optional

from ..core.exceptions import FlagStoreCorruptedError

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore:
    """Process-local store; contents are lost on exit."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._data)


class JsonKeyValueStore:
    """JSON-file backed store with atomic writes.

    The on-disk format is a single JSON object. Every mutation rewrites the
    file through a temporary file in the same directory followed by
    os.replace(), so readers never see a half-written file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data: dict[str, Any] = {}

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.debug("Could not ensure directory for key-value store: %s", self._path.parent)

        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load JSON from disk if it exists.

        Raises:
            FlagStoreCorruptedError: if the file exists but is not a JSON object
        """
        with self._lock:
            if not self._path.exists():
                logger.debug("Key-value store file not found; starting empty: %s", self._path)
                self._data = {}
                return

            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    data = json.load(fh)
            except (OSError, ValueError) as exc:
                raise FlagStoreCorruptedError(f"cannot read {self._path}: {exc}") from exc
            if not isinstance(data, dict):
                raise FlagStoreCorruptedError(f"{self._path} root must be a JSON object")

            self._data = data
            logger.debug("Loaded key-value store %s (%d keys)", self._path, len(self._data))

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = value
            try:
                self._persist()
            except Exception:
                if previous is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = previous
                raise

    def remove(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            value = self._data.pop(key)
            try:
                self._persist()
            except Exception:
                self._data[key] = value
                raise

    def keys(self) -> Iterable[str]:
        with self._lock:
            return list(self._data)

    def _persist(self) -> None:
        """Write the in-memory mapping to disk atomically. Called with lock held."""
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(self._data, tf, ensure_ascii=False)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except Exception as exc:
            logger.warning("Failed to persist key-value store to %s: %s", self._path, exc)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink(missing_ok=True)
            raise
