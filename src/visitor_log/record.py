"""Composite visitor attribute record."""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
import json
from threading import Lock
from typing import Any
import uuid

from .provider_spi import Ok, ProviderResult, ResultStatus

SECTIONS: tuple[str, ...] = (
    "page",
    "referrer",
    "location",
    "network",
    "device",
    "browser",
    "os",
    "screen",
    "gpu",
    "battery",
    "connection",
    "storage",
    "media",
    "timezone",
    "language",
    "capabilities",
    "fingerprints",
    "detection",
    "gps",
    "session",
)


class SectionStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    NOT_COLLECTED = "not_collected"


_STATUS_BY_RESULT = {
    ResultStatus.OK: SectionStatus.OK,
    ResultStatus.FAILED: SectionStatus.FAILED,
    ResultStatus.TIMED_OUT: SectionStatus.TIMED_OUT,
}


class RecordClock:
    """Hands out capture instants that never go backwards within a process."""

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._last: datetime | None = None
        self._lock = Lock()

    def next_instant(self) -> datetime:
        with self._lock:
            current = self._now()
            if current.tzinfo is None:
                current = current.replace(tzinfo=timezone.utc)
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current


DEFAULT_CLOCK = RecordClock()


def format_local_time(instant: datetime) -> str:
    return instant.astimezone().strftime("%c")


def _json_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, set | frozenset):
        return sorted(value, key=repr)
    return str(value)


def normalize_value(value: Any) -> Any:
    """Coerce ``value`` into plain JSON types so stored records round-trip."""

    return json.loads(json.dumps(value, default=_json_default, ensure_ascii=False))


@dataclass(frozen=True)
class CompositeRecord:
    id: str
    timestamp: str
    local_time: str
    sections: dict[str, Any] = field(default_factory=dict)
    outcomes: dict[str, str] = field(default_factory=dict)
    consent_given: bool = False
    consent_time: str | None = None
    returning_visitor: bool = False

    def section(self, name: str) -> Any:
        return self.sections.get(name)

    def is_absent(self, name: str) -> bool:
        return self.outcomes.get(name, SectionStatus.NOT_COLLECTED.value) != SectionStatus.OK.value

    @property
    def present_sections(self) -> tuple[str, ...]:
        return tuple(name for name in self.sections if not self.is_absent(name))

    @property
    def absent_sections(self) -> tuple[str, ...]:
        return tuple(name for name in self.sections if self.is_absent(name))

    def with_consent(
        self,
        *,
        consent_given: bool,
        consent_time: str | None = None,
        returning_visitor: bool = False,
    ) -> CompositeRecord:
        return replace(
            self,
            consent_given=consent_given,
            consent_time=consent_time,
            returning_visitor=returning_visitor,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "local_time": self.local_time,
            "sections": dict(self.sections),
            "outcomes": dict(self.outcomes),
            "consent_given": self.consent_given,
            "consent_time": self.consent_time,
            "returning_visitor": self.returning_visitor,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompositeRecord:
        if not isinstance(data, Mapping):
            raise TypeError("record must be a mapping")
        record_id = data["id"]
        timestamp = data["timestamp"]
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("record id must be a non-empty string")
        if not isinstance(timestamp, str):
            raise ValueError("record timestamp must be a string")
        sections = data.get("sections") or {}
        outcomes = data.get("outcomes") or {}
        if not isinstance(sections, Mapping) or not isinstance(outcomes, Mapping):
            raise ValueError("record sections/outcomes must be mappings")
        consent_time = data.get("consent_time")
        return cls(
            id=record_id,
            timestamp=timestamp,
            local_time=str(data.get("local_time") or ""),
            sections=dict(sections),
            outcomes={str(key): str(value) for key, value in outcomes.items()},
            consent_given=bool(data.get("consent_given", False)),
            consent_time=None if consent_time is None else str(consent_time),
            returning_visitor=bool(data.get("returning_visitor", False)),
        )


def new_record_id() -> str:
    return uuid.uuid4().hex


def build_record(
    results: Mapping[str, ProviderResult],
    *,
    clock: RecordClock | None = None,
    record_id: str | None = None,
) -> CompositeRecord:
    """Assemble a record from per-section results.

    Every known section is present in the output: successful ones with their
    value, the rest as ``None`` with the failure class in ``outcomes``.
    """

    instant = (clock or DEFAULT_CLOCK).next_instant()
    sections: dict[str, Any] = {}
    outcomes: dict[str, str] = {}
    names = list(SECTIONS) + [name for name in results if name not in SECTIONS]
    for name in names:
        result = results.get(name)
        if result is None:
            sections[name] = None
            outcomes[name] = SectionStatus.NOT_COLLECTED.value
        elif isinstance(result, Ok):
            try:
                sections[name] = normalize_value(result.value)
            except (TypeError, ValueError):
                sections[name] = None
                outcomes[name] = SectionStatus.FAILED.value
                continue
            outcomes[name] = SectionStatus.OK.value
        else:
            sections[name] = None
            outcomes[name] = _STATUS_BY_RESULT[result.status].value
    return CompositeRecord(
        id=record_id or new_record_id(),
        timestamp=instant.isoformat(),
        local_time=format_local_time(instant),
        sections=sections,
        outcomes=outcomes,
    )


__all__ = [
    "CompositeRecord",
    "DEFAULT_CLOCK",
    "RecordClock",
    "SECTIONS",
    "SectionStatus",
    "build_record",
    "format_local_time",
    "new_record_id",
    "normalize_value",
]
