"""
services/persistence.py

Key-value durable stores for the in-progress attempt.

Contract (all a SessionStore relies on):
    save(key, data)  /  load(key) -> str | None  /  clear(key)
Store failures raise PersistenceFailure.
"""

import logging
import os
import re
import tempfile
import threading
from typing import Dict, Optional, Protocol

from config import STATE_DIR
from jee_mock_test.errors import PersistenceFailure

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class PersistenceStore(Protocol):
    def save(self, key: str, data: str) -> None: ...

    def load(self, key: str) -> Optional[str]: ...

    def clear(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local store (tests, or hosts without disk)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}

    def save(self, key: str, data: str) -> None:
        with self._lock:
            self._data[key] = data

    def load(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def clear(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore:
    """
    One JSON file per key under a directory.

    Writes go to a temp file that replaces the target, so a crash mid-write
    leaves the previous save intact.
    """

    def __init__(self, directory: str = STATE_DIR):
        self.directory = directory

    def _path(self, key: str) -> str:
        if not _SAFE_KEY.match(key):
            raise PersistenceFailure(f"invalid storage key: {key!r}")
        return os.path.join(self.directory, f"{key}.json")

    def save(self, key: str, data: str) -> None:
        path = self._path(key)
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise
        except OSError as e:
            raise PersistenceFailure(f"cannot write {path}: {e}") from e

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceFailure(f"cannot read {path}: {e}") from e

    def clear(self, key: str) -> None:
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceFailure(f"cannot remove {path}: {e}") from e
