from __future__ import annotations

import asyncio

from visitor_log.provider_spi import Failed, Ok
from visitor_log.providers.gps import ContextGeolocation, GeoFix, GpsProvider, GpsStatus


class _HangingPort:
    async def current_position(self, *, timeout_s: float, high_accuracy: bool) -> GeoFix:
        await asyncio.sleep(10)
        raise AssertionError("unreachable")


class _BrokenPort:
    async def current_position(self, *, timeout_s: float, high_accuracy: bool) -> GeoFix:
        raise RuntimeError("driver crashed")


class _RecordingPort:
    def __init__(self) -> None:
        self.calls: list[tuple[float, bool]] = []

    async def current_position(self, *, timeout_s: float, high_accuracy: bool) -> GeoFix:
        self.calls.append((timeout_s, high_accuracy))
        return GeoFix(latitude=35.0, longitude=135.7, accuracy_m=12.5)


def test_granted_position_is_ok_payload() -> None:
    port = _RecordingPort()
    provider = GpsProvider(port, timeout_s=1.0, high_accuracy=False)

    result = asyncio.run(provider.execute())

    assert isinstance(result, Ok)
    assert result.value["status"] == GpsStatus.GRANTED.value
    assert result.value["latitude"] == 35.0
    assert result.value["accuracy_m"] == 12.5
    assert port.calls == [(1.0, False)]
    assert provider.section == "gps"


def test_denied_and_unavailable_are_ok_outcomes() -> None:
    denied = asyncio.run(GpsProvider(ContextGeolocation({"status": "denied"}), timeout_s=1.0).execute())
    unavailable = asyncio.run(
        GpsProvider(ContextGeolocation({"status": "unavailable"}), timeout_s=1.0).execute()
    )

    assert denied == Ok({"status": "denied"})
    assert isinstance(unavailable, Ok)
    assert unavailable.value["status"] == "unavailable"


def test_missing_geolocation_support_is_unavailable() -> None:
    result = asyncio.run(GpsProvider(None, timeout_s=1.0).execute())

    assert isinstance(result, Ok)
    assert result.value["status"] == "unavailable"


def test_slow_position_request_reports_timeout_status() -> None:
    result = asyncio.run(GpsProvider(_HangingPort(), timeout_s=0.05).execute())

    assert result == Ok({"status": "timeout"})


def test_reported_timeout_status() -> None:
    result = asyncio.run(GpsProvider(ContextGeolocation({"status": "timeout"}), timeout_s=1.0).execute())

    assert result == Ok({"status": "timeout"})


def test_context_coordinates_are_replayed() -> None:
    port = ContextGeolocation({"latitude": "51.5", "longitude": -0.12, "accuracy_m": 30, "speed": None})

    result = asyncio.run(GpsProvider(port, timeout_s=1.0).execute())

    assert isinstance(result, Ok)
    assert result.value["latitude"] == 51.5
    assert result.value["speed"] is None


def test_malformed_context_position_is_unavailable() -> None:
    result = asyncio.run(GpsProvider(ContextGeolocation({"latitude": "north"}), timeout_s=1.0).execute())

    assert isinstance(result, Ok)
    assert result.value["status"] == "unavailable"


def test_unexpected_errors_become_failed() -> None:
    result = asyncio.run(GpsProvider(_BrokenPort(), timeout_s=1.0).execute())

    assert isinstance(result, Failed)
    assert "driver crashed" in result.reason
