from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import time

import pytest

from visitor_log.errors import ProviderFailure
from visitor_log.orchestrator import Orchestrator, run_all
from visitor_log.provider_spi import ProviderKind, ProviderResult
from visitor_log.providers.single import SingleProvider
from visitor_log.record import SECTIONS, RecordClock, SectionStatus

from _fakes import CapturingLogger, DelayedSource, FakeClock, StaticSource


class _ExplodingProvider:
    kind = ProviderKind.SINGLE
    section = "gpu"
    timeout_s = 1.0

    def name(self) -> str:
        return "exploding"

    async def execute(self) -> ProviderResult:
        raise RuntimeError("bug in provider")


def _single(source: object, section: str, timeout_s: float = 10.0) -> SingleProvider:
    return SingleProvider(source, section=section, timeout_s=timeout_s)  # type: ignore[arg-type]


def test_partial_failures_still_produce_a_record(
    record_clock: RecordClock, event_logger: CapturingLogger
) -> None:
    slow = DelayedSource("gps", {"status": "granted"}, delay=5.0)
    providers = [
        _single(StaticSource("page", {"url": "https://example.test/"}), "page"),
        _single(StaticSource("ip-api", error=ProviderFailure("down")), "location"),
        _single(slow, "gps"),
    ]

    started = time.monotonic()
    record = asyncio.run(
        run_all(providers, 0.2, clock=record_clock, event_logger=event_logger)
    )
    elapsed = time.monotonic() - started

    assert elapsed < 1.5
    assert record.section("page") == {"url": "https://example.test/"}
    assert record.outcomes["page"] == SectionStatus.OK.value
    assert record.outcomes["location"] == SectionStatus.FAILED.value
    assert record.outcomes["gps"] == SectionStatus.TIMED_OUT.value
    assert record.outcomes["battery"] == SectionStatus.NOT_COLLECTED.value
    assert record.section("gps") is None
    assert set(SECTIONS) <= set(record.sections)
    assert record.present_sections == ("page",)
    assert slow.cancelled

    outcomes = {event["provider"]: event["status"] for event in event_logger.of_type("provider_outcome")}
    assert outcomes == {"page": "ok", "ip-api": "failed", "gps": "timed_out"}
    (assembled,) = event_logger.of_type("record_assembled")
    assert assembled["deadline_hit"] is True
    assert assembled["record_id"] == record.id


def test_abandoned_results_are_never_applied(record_clock: RecordClock) -> None:
    late = DelayedSource("battery", {"level": 0.5}, delay=0.3)
    providers = [
        _single(StaticSource("page", {"url": "u"}), "page"),
        _single(late, "battery"),
    ]

    async def _scenario() -> object:
        record = await run_all(providers, 0.05, clock=record_clock)
        await asyncio.sleep(0.4)
        return record

    record = asyncio.run(_scenario())

    assert record.section("battery") is None  # type: ignore[attr-defined]
    assert not late.completed


def test_raising_provider_is_converted_to_failed(record_clock: RecordClock) -> None:
    providers = [
        _ExplodingProvider(),
        _single(StaticSource("page", {"url": "u"}), "page"),
    ]

    record = asyncio.run(run_all(providers, 1.0, clock=record_clock))

    assert record.outcomes["gpu"] == SectionStatus.FAILED.value
    assert record.outcomes["page"] == SectionStatus.OK.value


def test_providers_sharing_a_section_merge_earlier_first(record_clock: RecordClock) -> None:
    providers = [
        _single(StaticSource("labels", {"type": "Mobile", "brand": None}), "device"),
        _single(StaticSource("probe", {"type": "Desktop", "touch": True}), "device"),
        _single(StaticSource("broken", error=ProviderFailure("x")), "device"),
    ]

    record = asyncio.run(run_all(providers, 1.0, clock=record_clock))

    assert record.section("device") == {"type": "Mobile", "brand": None, "touch": True}
    assert record.outcomes["device"] == SectionStatus.OK.value


def test_timestamps_never_go_backwards() -> None:
    start = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    readings = iter([start, start - timedelta(minutes=5), start + timedelta(seconds=1)])
    orchestrator = Orchestrator(
        [_single(StaticSource("page", {"url": "u"}), "page")],
        overall_deadline_s=1.0,
        clock=RecordClock(lambda: next(readings)),
    )

    stamps = [asyncio.run(orchestrator.run_all()).timestamp for _ in range(3)]

    parsed = [datetime.fromisoformat(stamp) for stamp in stamps]
    assert parsed == sorted(parsed)
    assert parsed[1] == start


def test_orchestrator_overrides_and_validation() -> None:
    orchestrator = Orchestrator(overall_deadline_s=2.0, clock=RecordClock(FakeClock()))

    record = asyncio.run(
        orchestrator.run_all([_single(StaticSource("page", {"url": "u"}), "page")], 0.5)
    )

    assert record.outcomes["page"] == SectionStatus.OK.value
    assert orchestrator.overall_deadline_s == 2.0
    with pytest.raises(ValueError):
        Orchestrator(overall_deadline_s=0)


def test_no_providers_yields_empty_record(record_clock: RecordClock) -> None:
    record = asyncio.run(run_all([], 1.0, clock=record_clock))

    assert record.present_sections == ()
    assert all(value is None for value in record.sections.values())
