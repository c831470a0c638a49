from __future__ import annotations

import asyncio

import pytest

from visitor_log.errors import ProviderFailure
from visitor_log.provider_spi import Failed, Ok, ProviderKind
from visitor_log.providers.fallback import FallbackChainProvider, merge_missing_fields

from _fakes import CapturingLogger, DelayedSource, StaticSource


def test_backup_answers_when_primary_fails(event_logger: CapturingLogger) -> None:
    provider = FallbackChainProvider(
        [
            StaticSource("ip-api", error=ProviderFailure("status fail")),
            StaticSource("ipapi.co", {"city": "Osaka"}),
        ],
        name="geolocation",
        section="location",
        timeout_s=1.0,
        event_logger=event_logger,
    )

    result = asyncio.run(provider.execute())

    assert result == Ok({"city": "Osaka"})
    assert provider.kind is ProviderKind.FALLBACK_CHAIN
    (event,) = event_logger.of_type("source_fallback")
    assert event["source"] == "ip-api"
    assert event["attempt"] == 1
    assert event["error_type"] == "ProviderFailure"


def test_first_success_stops_chain_without_enrichment() -> None:
    backup = StaticSource("ipapi.co", {"city": "Osaka"})
    provider = FallbackChainProvider(
        [StaticSource("ip-api", {"city": "Kyoto"}), backup],
        name="geolocation",
        section="location",
        timeout_s=1.0,
    )

    assert asyncio.run(provider.execute()) == Ok({"city": "Kyoto"})
    assert backup.calls == 0


def test_all_sources_failing_reports_last_error() -> None:
    provider = FallbackChainProvider(
        [
            StaticSource("ip-api", error=ProviderFailure("primary down")),
            StaticSource("ipapi.co", error=ProviderFailure("backup down")),
        ],
        name="geolocation",
        section="location",
        timeout_s=1.0,
    )

    result = asyncio.run(provider.execute())

    assert isinstance(result, Failed)
    assert result.reason == "ProviderFailure: backup down"


def test_enrichment_fills_missing_fields_primary_wins() -> None:
    provider = FallbackChainProvider(
        [
            StaticSource("ip-api", {"city": "Kyoto", "isp": None}),
            StaticSource("ipapi.co", {"city": "Osaka", "isp": "Y", "asn": "AS64500"}),
        ],
        name="geolocation",
        section="location",
        timeout_s=1.0,
        enrich=True,
    )

    result = asyncio.run(provider.execute())

    assert result == Ok({"city": "Kyoto", "isp": "Y", "asn": "AS64500"})


def test_timed_out_primary_contributes_nothing() -> None:
    primary = DelayedSource("ip-api", {"isp": "Y"}, delay=1.0)
    provider = FallbackChainProvider(
        [primary, StaticSource("ipapi.co", {"city": "X"})],
        name="geolocation",
        section="location",
        timeout_s=2.0,
        source_timeout_s=0.05,
        enrich=True,
    )

    result = asyncio.run(provider.execute())

    assert isinstance(result, Ok)
    assert result.value == {"city": "X"}
    assert "isp" not in result.value
    assert primary.cancelled


def test_sources_run_strictly_in_order() -> None:
    journal: list[str] = []
    provider = FallbackChainProvider(
        [
            DelayedSource("a", error=ProviderFailure("a"), delay=0.01, journal=journal),
            DelayedSource("b", error=ProviderFailure("b"), delay=0.01, journal=journal),
            DelayedSource("c", {"ok": True}, delay=0.01, journal=journal),
        ],
        name="chain",
        section="location",
        timeout_s=1.0,
    )

    asyncio.run(provider.execute())

    assert journal == ["start:a", "end:a", "start:b", "end:b", "start:c", "end:c"]


def test_overall_timeout_bounds_the_chain() -> None:
    backup = DelayedSource("ipapi.co", {"city": "X"}, delay=1.0)
    provider = FallbackChainProvider(
        [DelayedSource("ip-api", {"city": "Y"}, delay=1.0), backup],
        name="geolocation",
        section="location",
        timeout_s=0.05,
    )

    result = asyncio.run(provider.execute())

    assert isinstance(result, Failed)
    assert result.reason.startswith("ProviderTimeout")
    assert not backup.completed


def test_merge_missing_fields() -> None:
    assert merge_missing_fields({"a": 1, "b": None}, {"a": 2, "b": 3, "c": None}) == {"a": 1, "b": 3}


def test_empty_chain_is_rejected() -> None:
    with pytest.raises(ValueError):
        FallbackChainProvider([], name="geolocation", section="location", timeout_s=1.0)
