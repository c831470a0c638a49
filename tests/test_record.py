from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import pytest

from visitor_log.provider_spi import Failed, Ok, TimedOut
from visitor_log.record import (
    SECTIONS,
    CompositeRecord,
    RecordClock,
    SectionStatus,
    build_record,
    normalize_value,
)

from _fakes import FakeClock


class _Colour(Enum):
    RED = "red"


def test_build_record_marks_each_section() -> None:
    record = build_record(
        {
            "page": Ok({"url": "u"}),
            "location": Failed("down"),
            "gps": TimedOut(10.0),
            "custom": Ok(1),
        },
        clock=RecordClock(FakeClock()),
    )

    assert list(record.sections)[: len(SECTIONS)] == list(SECTIONS)
    assert record.outcomes["page"] == SectionStatus.OK.value
    assert record.outcomes["location"] == SectionStatus.FAILED.value
    assert record.outcomes["gps"] == SectionStatus.TIMED_OUT.value
    assert record.outcomes["screen"] == SectionStatus.NOT_COLLECTED.value
    assert record.section("custom") == 1
    assert record.is_absent("location")
    assert not record.is_absent("page")
    assert record.timestamp == "2024-01-01T00:00:00+00:00"
    assert len(record.id) == 32


def test_unserializable_section_is_failed() -> None:
    loop: dict[str, Any] = {}
    loop["self"] = loop

    record = build_record({"page": Ok(loop)}, clock=RecordClock(FakeClock()))

    assert record.outcomes["page"] == SectionStatus.FAILED.value
    assert record.section("page") is None


def test_normalize_value_coerces_rich_types() -> None:
    value = normalize_value(
        {"when": datetime(2024, 1, 1, tzinfo=timezone.utc), "colour": _Colour.RED, "tags": ("a", "b")}
    )

    assert value == {"when": "2024-01-01T00:00:00+00:00", "colour": "red", "tags": ["a", "b"]}


def test_naive_clock_readings_are_treated_as_utc() -> None:
    clock = RecordClock(lambda: datetime(2024, 1, 1, 8, 0))

    assert clock.next_instant().tzinfo is timezone.utc


@pytest.mark.parametrize(
    "data",
    [
        {"timestamp": "t"},
        {"id": "", "timestamp": "t"},
        {"id": "a", "timestamp": 1},
        {"id": "a", "timestamp": "t", "sections": ["page"]},
    ],
)
def test_from_dict_validates(data: dict[str, Any]) -> None:
    with pytest.raises((KeyError, ValueError)):
        CompositeRecord.from_dict(data)


def test_with_consent_returns_copy() -> None:
    record = build_record({}, clock=RecordClock(FakeClock()), record_id="r1")

    updated = record.with_consent(consent_given=True, consent_time="2024-01-01T00:00:00+00:00")

    assert updated.consent_given and not record.consent_given
    assert CompositeRecord.from_dict(updated.to_dict()) == updated
