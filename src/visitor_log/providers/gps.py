"""GPS provider with platform-permission outcomes."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from enum import Enum
import logging
from typing import Any, Protocol

from ..provider_spi import Failed, Ok, ProviderKind, ProviderResult
from .base import BaseProvider

__all__ = [
    "ContextGeolocation",
    "GeoFix",
    "GeolocationPort",
    "GpsProvider",
    "GpsStatus",
    "PermissionDenied",
    "PositionUnavailable",
]

LOGGER = logging.getLogger(__name__)


class GpsStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


class PermissionDenied(Exception):
    """The user or platform refused location access."""


class PositionUnavailable(Exception):
    """The platform could not determine a position."""


@dataclass(frozen=True, slots=True)
class GeoFix:
    latitude: float
    longitude: float
    accuracy_m: float
    altitude: float | None = None
    altitude_accuracy_m: float | None = None
    heading: float | None = None
    speed: float | None = None
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class GeolocationPort(Protocol):
    async def current_position(self, *, timeout_s: float, high_accuracy: bool) -> GeoFix: ...


class ContextGeolocation:
    """Replays a position (or refusal) reported by the host.

    ``data`` is either ``{"status": "denied" | "unavailable" | "timeout"}`` or a
    coordinate mapping with ``latitude``, ``longitude`` and ``accuracy_m``.
    """

    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data = dict(data)

    async def current_position(self, *, timeout_s: float, high_accuracy: bool) -> GeoFix:
        status = self._data.get("status")
        if status == GpsStatus.DENIED.value:
            raise PermissionDenied("permission denied")
        if status == GpsStatus.UNAVAILABLE.value:
            raise PositionUnavailable("position unavailable")
        if status == GpsStatus.TIMEOUT.value:
            raise TimeoutError("position request timed out")
        try:
            return GeoFix(
                latitude=float(self._data["latitude"]),
                longitude=float(self._data["longitude"]),
                accuracy_m=float(self._data.get("accuracy_m", 0.0)),
                altitude=_optional_float(self._data.get("altitude")),
                altitude_accuracy_m=_optional_float(self._data.get("altitude_accuracy_m")),
                heading=_optional_float(self._data.get("heading")),
                speed=_optional_float(self._data.get("speed")),
                timestamp=self._data.get("timestamp"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise PositionUnavailable(f"malformed position: {exc}") from exc


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


class GpsProvider(BaseProvider):
    """Request one position fix.

    Permission outcomes are part of the ``Ok`` payload (``status`` of
    ``denied``, ``unavailable``, ``timeout`` or ``granted``); only unexpected
    errors become ``Failed``.
    """

    kind = ProviderKind.SINGLE

    def __init__(
        self,
        port: GeolocationPort | None,
        *,
        timeout_s: float,
        high_accuracy: bool = True,
        name: str = "gps",
        section: str = "gps",
    ) -> None:
        super().__init__(name=name, section=section, timeout_s=timeout_s)
        self._port = port
        self._high_accuracy = high_accuracy

    async def execute(self) -> ProviderResult:
        if self._port is None:
            return Ok({"status": GpsStatus.UNAVAILABLE.value, "reason": "geolocation unsupported"})
        try:
            fix = await asyncio.wait_for(
                self._port.current_position(
                    timeout_s=self.timeout_s, high_accuracy=self._high_accuracy
                ),
                timeout=self.timeout_s,
            )
        except PermissionDenied:
            return Ok({"status": GpsStatus.DENIED.value})
        except PositionUnavailable as exc:
            return Ok({"status": GpsStatus.UNAVAILABLE.value, "reason": str(exc)})
        except TimeoutError:
            return Ok({"status": GpsStatus.TIMEOUT.value})
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("gps provider failed: %s", exc)
            return Failed.from_exception(exc)
        return Ok({"status": GpsStatus.GRANTED.value, **fix.to_dict()})
