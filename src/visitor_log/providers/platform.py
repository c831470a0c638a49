"""Sources reading page and platform data reported by the host."""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
import inspect
from typing import Any, Protocol, TypedDict, cast

from ..errors import ProviderFailure
from ..session import SessionAccumulator
from ..utils import ensure_str_list

__all__ = [
    "Classifier",
    "ClassifierSource",
    "ContextSource",
    "Labels",
    "PROBE_SECTIONS",
    "PageContext",
    "ProbeSource",
    "SessionSource",
    "unknown_classifier",
]

# Sections answered by capability probes supplied by the host page.
PROBE_SECTIONS: tuple[str, ...] = (
    "screen",
    "gpu",
    "battery",
    "connection",
    "storage",
    "media",
    "capabilities",
    "fingerprints",
    "detection",
)


class Labels(TypedDict, total=False):
    browser: str
    browserVersion: str
    os: str
    osVersion: str
    deviceType: str
    deviceBrand: str
    deviceModel: str


class Classifier(Protocol):
    def __call__(self, user_agent: str) -> Labels: ...


def unknown_classifier(user_agent: str) -> Labels:
    """Classifier used when the host does not supply one."""

    return {
        "browser": "Unknown",
        "browserVersion": "Unknown",
        "os": "Unknown",
        "osVersion": "Unknown",
        "deviceType": "Unknown",
        "deviceBrand": "Unknown",
        "deviceModel": "Unknown",
    }


@dataclass(frozen=True)
class PageContext:
    """Everything the host page reports about the current load."""

    url: str = ""
    title: str = ""
    referrer: str = ""
    user_agent: str = ""
    language: str = ""
    languages: tuple[str, ...] = ()
    timezone: str = ""
    timezone_offset_min: int | None = None
    probes: Mapping[str, Any] = field(default_factory=dict)
    local_addresses: tuple[str, ...] | None = None
    gps: Mapping[str, Any] | None = None
    session: Mapping[str, Any] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PageContext:
        if not isinstance(data, Mapping):
            raise TypeError("page context must be a mapping")
        probes = data.get("probes") or {}
        if not isinstance(probes, Mapping):
            raise TypeError("probes must be a mapping of section to value")
        local = data.get("local_addresses")
        gps = data.get("gps")
        session = data.get("session")
        offset = data.get("timezone_offset_min")
        return cls(
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
            referrer=str(data.get("referrer") or ""),
            user_agent=str(data.get("user_agent") or ""),
            language=str(data.get("language") or ""),
            languages=tuple(ensure_str_list(data.get("languages"))),
            timezone=str(data.get("timezone") or ""),
            timezone_offset_min=None if offset is None else int(offset),
            probes=dict(probes),
            local_addresses=None if local is None else tuple(ensure_str_list(local)),
            gps=dict(gps) if isinstance(gps, Mapping) else None,
            session=dict(session) if isinstance(session, Mapping) else None,
        )

    def page(self) -> dict[str, Any]:
        return {"url": self.url or None, "title": self.title or None}

    def referrer_info(self) -> dict[str, Any]:
        return {"referrer": self.referrer or "Direct"}

    def timezone_info(self) -> dict[str, Any]:
        return {"timezone": self.timezone or None, "offset_min": self.timezone_offset_min}

    def language_info(self) -> dict[str, Any]:
        return {"language": self.language or None, "languages": list(self.languages)}


class ContextSource:
    """Derive a section directly from the page context."""

    def __init__(self, name: str, compute: Callable[[], Any]) -> None:
        self._name = name
        self._compute = compute

    def name(self) -> str:
        return self._name

    async def fetch_async(self) -> Any:
        return self._compute()


class ProbeSource:
    """Read one capability probe reported by the host.

    A probe value may be plain data, a zero-argument callable, or an awaitable;
    a missing probe means the platform does not support the capability.
    """

    def __init__(self, section: str, probes: Mapping[str, Any]) -> None:
        self._section = section
        self._probes = probes

    def name(self) -> str:
        return f"probe:{self._section}"

    async def fetch_async(self) -> Any:
        if self._section not in self._probes:
            raise ProviderFailure(f"{self._section} is not supported on this platform")
        value = self._probes[self._section]
        if inspect.iscoroutinefunction(value):
            value = value()
        elif callable(value):
            value = await asyncio.to_thread(value)
        if inspect.isawaitable(value):
            value = await cast(Awaitable[Any], value)
        if isinstance(value, Mapping) and value.get("supported") is False:
            raise ProviderFailure(f"{self._section} is not supported on this platform")
        return value


class ClassifierSource:
    """Project user-agent labels onto the browser/os/device sections."""

    _PROJECTIONS: dict[str, Callable[[Labels, str], dict[str, Any]]] = {
        "browser": lambda labels, ua: {
            "name": labels.get("browser"),
            "version": labels.get("browserVersion"),
            "userAgent": ua,
        },
        "os": lambda labels, ua: {
            "name": labels.get("os"),
            "version": labels.get("osVersion"),
        },
        "device": lambda labels, ua: {
            "type": labels.get("deviceType"),
            "brand": labels.get("deviceBrand"),
            "model": labels.get("deviceModel"),
        },
    }

    def __init__(self, section: str, classifier: Classifier, user_agent: str) -> None:
        if section not in self._PROJECTIONS:
            raise ValueError(f"classifier cannot answer section: {section}")
        self._section = section
        self._classifier = classifier
        self._user_agent = user_agent

    def name(self) -> str:
        return f"classifier:{self._section}"

    async def fetch_async(self) -> dict[str, Any]:
        if not self._user_agent:
            raise ProviderFailure("no user agent reported")
        labels = await asyncio.to_thread(self._classifier, self._user_agent)
        return self._PROJECTIONS[self._section](labels, self._user_agent)


class SessionSource:
    """Read the session accumulator once, at record assembly.

    Without a live accumulator the counters reported by the host are parsed
    here, so malformed values fail this section only.
    """

    def __init__(
        self,
        accumulator: SessionAccumulator | None = None,
        *,
        counts: Mapping[str, Any] | None = None,
    ) -> None:
        self._accumulator = accumulator
        self._counts = dict(counts or {})

    def name(self) -> str:
        return "session"

    async def fetch_async(self) -> dict[str, Any]:
        accumulator = self._accumulator
        if accumulator is None:
            try:
                accumulator = SessionAccumulator.from_counts(self._counts)
            except (TypeError, ValueError) as exc:
                raise ProviderFailure(f"malformed session counters: {exc}") from exc
        return accumulator.snapshot()
