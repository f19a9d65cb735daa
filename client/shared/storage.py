"""
Durable client storage.

A tiny key/value store holding JSON-serializable values that must survive
restarts (the guest persona selection, the local backend's session).
Reads and writes are synchronous so callers can restore state without
awaiting anything.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from .exceptions import StorageError

logger = logging.getLogger(__name__)


@runtime_checkable
class ClientStorage(Protocol):
    """Interface for durable key/value client storage."""

    def get(self, key: str) -> Optional[Any]:
        """Return the stored value for ``key`` or None."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` (must be JSON-serializable) under ``key``."""
        ...

    def remove(self, key: str) -> None:
        """Delete ``key`` if present."""
        ...

    def is_writable(self) -> bool:
        """Whether writes are currently possible."""
        ...


class MemoryStorage:
    """In-memory storage for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, Any]] = None, writable: bool = True):
        self._data: dict[str, Any] = dict(initial or {})
        self._writable = writable

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        if not self._writable:
            raise StorageError("Storage is read-only", code="STORAGE_READ_ONLY")
        # Round-trip through JSON to enforce serializability like the file store
        try:
            self._data[key] = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot store {key!r}: {e}", code="STORAGE_WRITE_FAILED") from e

    def remove(self, key: str) -> None:
        if not self._writable:
            raise StorageError("Storage is read-only", code="STORAGE_READ_ONLY")
        self._data.pop(key, None)

    def is_writable(self) -> bool:
        return self._writable


class JsonFileStorage:
    """
    Storage backed by a single JSON object file.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace`` so a crash never leaves a half-written file.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(f"Client storage at {self._path} is corrupt, ignoring it")
            return {}
        except OSError as e:
            raise StorageError(
                f"Cannot read client storage: {e}",
                code="STORAGE_READ_FAILED",
                details={"path": str(self._path)},
            ) from e
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        tmp_name: Optional[str] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".tmp-")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle)
            os.replace(tmp_name, self._path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(
                f"Cannot write client storage: {e}",
                code="STORAGE_WRITE_FAILED",
                details={"path": str(self._path)},
            ) from e
        finally:
            if tmp_name is not None:
                self._remove_temp(tmp_name)

    def _remove_temp(self, tmp_name: str) -> None:
        try:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
        except OSError as e:
            logger.warning(f"Could not remove temporary file {tmp_name}: {e}")

    def get(self, key: str) -> Optional[Any]:
        return self._read_all().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def is_writable(self) -> bool:
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return os.access(directory, os.W_OK)
