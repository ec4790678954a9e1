"""Durable key-value persistence with TTL-based staleness.

Every durable record is a JSON-encoded :class:`PersistedRecord` holding the
snapshot, the write timestamp and an optional revalidation marker. Backends
only move strings around; staleness and decoding live in
:class:`PersistenceAdapter`.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError

from pydatalayer.config import DataLayerConfig
from pydatalayer.exceptions import DataLayerParseError, DataLayerPersistenceError

_logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Structural string key-value store.

    Implementations raise :class:`DataLayerPersistenceError` when the
    underlying medium is unavailable or full.
    """

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStorage:
    """Process-local storage with an optional byte quota."""

    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def _used_bytes(self, *, excluding: str | None = None) -> int:
        return sum(len(k) + len(v) for k, v in self._items.items() if k != excluding)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            needed = self._used_bytes(excluding=key) + len(key) + len(value)
            if needed > self._quota_bytes:
                raise DataLayerPersistenceError(
                    f"Storage quota exceeded writing {key} ({needed} > {self._quota_bytes} bytes)",
                    key=key,
                )
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileStorage:
    """Storage backed by a single JSON document on disk.

    The whole document is rewritten on every mutation through a temporary
    file and ``os.replace`` so readers never observe a half-written file.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DataLayerPersistenceError(f"Cannot read {self._path}: {exc}") from exc
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DataLayerPersistenceError(f"Storage file {self._path} is not valid JSON") from exc
        if not isinstance(data, dict):
            raise DataLayerPersistenceError(f"Storage file {self._path} does not hold an object")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, items: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(items, fh, separators=(",", ":"))
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise DataLayerPersistenceError(f"Cannot write {self._path}: {exc}") from exc

    def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove_item(self, key: str) -> None:
        items = self._read_all()
        if items.pop(key, None) is not None:
            self._write_all(items)

    def keys(self) -> list[str]:
        return list(self._read_all())


def create_storage(config: DataLayerConfig) -> Storage:
    """Build the storage backend selected by ``config.storage_path``."""
    if config.storage_path:
        return JsonFileStorage(config.storage_path)
    return MemoryStorage()


class PersistedRecord(BaseModel):
    """A snapshot plus the epoch-seconds timestamp it was written at."""

    model_config = ConfigDict(extra="forbid")

    snapshot: Any
    written_at: float
    marker: str | None = None


def decode_record(raw: str) -> PersistedRecord:
    """Decode a stored record, raising :class:`DataLayerParseError` when corrupt."""
    try:
        return PersistedRecord.model_validate_json(raw)
    except ValidationError as exc:
        raise DataLayerParseError(f"Corrupt persisted record: {exc.error_count()} error(s)") from exc


class PersistenceAdapter:
    """TTL-aware record store over a :class:`Storage` backend.

    Failures are never raised to callers: writes report ``False`` and reads
    report a miss, leaving the in-memory state authoritative.
    """

    def __init__(self, storage: Storage, *, clock: Callable[[], float] = time.time) -> None:
        self._storage = storage
        self._clock = clock

    @property
    def storage(self) -> Storage:
        return self._storage

    def store(self, key: str, value: Any, *, marker: str | None = None) -> bool:
        """Persist *value* under *key* stamped with the current time."""
        record = PersistedRecord(snapshot=value, written_at=self._clock(), marker=marker)
        try:
            encoded = record.model_dump_json()
        except ValueError as exc:
            _logger.warning("Could not encode %s: %s", key, exc)
            return False
        try:
            self._storage.set_item(key, encoded)
        except DataLayerPersistenceError as exc:
            _logger.warning("Could not persist %s: %s", key, exc)
            return False
        return True

    def load_record(self, key: str, ttl: float | None = None, *, evict_stale: bool = False) -> PersistedRecord | None:
        """Return the record under *key*, or ``None`` when absent, corrupt or stale.

        ``ttl=None`` ignores staleness entirely.
        """
        try:
            raw = self._storage.get_item(key)
        except DataLayerPersistenceError as exc:
            _logger.warning("Could not read %s: %s", key, exc)
            return None
        if raw is None:
            return None

        try:
            record = decode_record(raw)
        except DataLayerParseError as exc:
            _logger.warning("Ignoring %s: %s", key, exc)
            return None

        if ttl is not None and self._clock() - record.written_at > ttl:
            _logger.debug("Record %s is older than %.0fs; treating as absent", key, ttl)
            if evict_stale:
                self.remove(key)
            return None
        return record

    def load(self, key: str, ttl: float | None = None, *, evict_stale: bool = False) -> Any:
        """Return the snapshot under *key* when present and within *ttl*."""
        record = self.load_record(key, ttl, evict_stale=evict_stale)
        return None if record is None else record.snapshot

    def touch(self, key: str) -> bool:
        """Re-stamp an existing record without changing its snapshot or marker."""
        record = self.load_record(key)
        if record is None:
            return False
        return self.store(key, record.snapshot, marker=record.marker)

    def age(self, key: str) -> float | None:
        """Seconds since the record under *key* was written, if it exists."""
        record = self.load_record(key)
        if record is None:
            return None
        return self._clock() - record.written_at

    def remove(self, key: str) -> None:
        try:
            self._storage.remove_item(key)
        except DataLayerPersistenceError as exc:
            _logger.warning("Could not remove %s: %s", key, exc)
