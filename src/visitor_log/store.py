"""Bounded, persisted, append-only log of composite records."""
from __future__ import annotations

from collections.abc import Iterator, Sequence
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any, Protocol

from .errors import PersistenceReadFailure
from .observability import EventLogger, emit_event
from .record import CompositeRecord

LOGGER = logging.getLogger(__name__)

LOGS_KEY = "visitor_logs"
DEFAULT_CAPACITY = 1000


class KeyValueStorage(Protocol):
    """Persisted scalar values addressed by stable keys."""

    def read(self, key: str) -> str | None: ...
    def write(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class FileStorage:
    """One UTF-8 file per key under ``directory``, replaced atomically on write."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"invalid storage key: {key!r}")
        return self._directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class MemoryStorage:
    """In-process storage used by tests and embedded hosts."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})
        self.writes = 0

    def read(self, key: str) -> str | None:
        return self.values.get(key)

    def write(self, key: str, value: str) -> None:
        self.writes += 1
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


def decode_records(text: str) -> list[CompositeRecord]:
    """Decode a persisted JSON array; raises :class:`PersistenceReadFailure`."""

    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise PersistenceReadFailure(f"invalid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise PersistenceReadFailure("persisted log must be a JSON array")
    records: list[CompositeRecord] = []
    for index, entry in enumerate(payload):
        try:
            records.append(CompositeRecord.from_dict(entry))
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceReadFailure(f"entry {index} is not a record: {exc}") from exc
    return records


def encode_records(records: Sequence[CompositeRecord]) -> str:
    return json.dumps([record.to_dict() for record in records], ensure_ascii=False)


class TelemetryLogStore:
    """Ordered record log bounded to ``capacity`` entries (oldest evicted first).

    Every mutation persists the complete sequence before the in-memory view
    changes, so a failed write leaves both the persisted and the in-memory
    state as they were.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        capacity: int = DEFAULT_CAPACITY,
        key: str = LOGS_KEY,
        event_logger: EventLogger | None = None,
    ) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int):
            raise TypeError("capacity must be an int")
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self._storage = storage
        self._capacity = capacity
        self._key = key
        self._event_logger = event_logger
        self._records: list[CompositeRecord] = self._load()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CompositeRecord]:
        return iter(tuple(self._records))

    def _load(self) -> list[CompositeRecord]:
        try:
            raw = self._storage.read(self._key)
            if raw is None:
                return []
            records = decode_records(raw)
        except (OSError, UnicodeDecodeError, PersistenceReadFailure) as exc:
            LOGGER.warning("discarding unreadable visitor log state: %s", exc)
            emit_event(self._event_logger, "store_reset", reason=str(exc))
            try:
                self._storage.delete(self._key)
            except OSError as delete_exc:
                LOGGER.warning("could not remove unreadable visitor log state: %s", delete_exc)
            return []
        if len(records) > self._capacity:
            records = records[-self._capacity :]
        return records

    def _persist(self, records: Sequence[CompositeRecord]) -> None:
        self._storage.write(self._key, encode_records(records))

    def append(self, record: CompositeRecord) -> None:
        if any(existing.id == record.id for existing in self._records):
            raise ValueError(f"duplicate record id: {record.id}")
        overflow = max(0, len(self._records) + 1 - self._capacity)
        candidate = self._records[overflow:]
        candidate.append(record)
        self._persist(candidate)
        self._records = candidate
        emit_event(
            self._event_logger,
            "store_appended",
            record_id=record.id,
            size=len(candidate),
            evicted=overflow,
        )

    def read_all(self) -> list[CompositeRecord]:
        return list(self._records)

    def clear(self) -> None:
        """Remove every entry; callers obtain the operator's confirmation first."""

        self._persist([])
        self._records = []
        emit_event(self._event_logger, "store_cleared")

    def snapshot(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self._records]


__all__ = [
    "DEFAULT_CAPACITY",
    "FileStorage",
    "KeyValueStorage",
    "LOGS_KEY",
    "MemoryStorage",
    "TelemetryLogStore",
    "decode_records",
    "encode_records",
]
