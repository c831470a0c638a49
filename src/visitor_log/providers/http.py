"""HTTP JSON sources for geolocation and public address resolution."""
from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import Any

import requests

from ..errors import ProviderFailure, ProviderTimeout
from ..provider_spi import AttributeSource

__all__ = [
    "DEFAULT_GEOLOCATION_ENDPOINTS",
    "DEFAULT_IP_RESOLVERS",
    "JsonHttpSource",
    "PARSERS",
    "parse_ip_api",
    "parse_ip_field",
    "parse_ipapi_co",
]

LOGGER = logging.getLogger(__name__)

Parser = Callable[[Any], Any]

_LOCATION_FIELDS = (
    "ip",
    "city",
    "region",
    "regionCode",
    "country",
    "countryCode",
    "zipCode",
    "latitude",
    "longitude",
    "timezone",
    "isp",
    "organization",
    "asn",
)


def _require_mapping(payload: Any, source: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise ProviderFailure(f"{source}: expected a JSON object")
    return payload


def _location(values: Mapping[str, Any]) -> dict[str, Any]:
    return {field: values.get(field) for field in _LOCATION_FIELDS}


def parse_ip_api(payload: Any) -> dict[str, Any]:
    """Normalize an ``ip-api.com`` response; non-success status is a failure."""

    data = _require_mapping(payload, "ip-api")
    if data.get("status") != "success":
        raise ProviderFailure(f"ip-api: {data.get('message') or 'lookup unsuccessful'}")
    return _location(
        {
            "ip": data.get("query"),
            "city": data.get("city"),
            "region": data.get("regionName"),
            "regionCode": data.get("region"),
            "country": data.get("country"),
            "countryCode": data.get("countryCode"),
            "zipCode": data.get("zip"),
            "latitude": data.get("lat"),
            "longitude": data.get("lon"),
            "timezone": data.get("timezone"),
            "isp": data.get("isp"),
            "organization": data.get("org"),
            "asn": data.get("as"),
        }
    )


def parse_ipapi_co(payload: Any) -> dict[str, Any]:
    """Normalize an ``ipapi.co`` response."""

    data = _require_mapping(payload, "ipapi.co")
    if data.get("error"):
        raise ProviderFailure(f"ipapi.co: {data.get('reason') or 'lookup unsuccessful'}")
    return _location(
        {
            "ip": data.get("ip"),
            "city": data.get("city"),
            "region": data.get("region"),
            "regionCode": data.get("region_code"),
            "country": data.get("country_name"),
            "countryCode": data.get("country_code"),
            "zipCode": data.get("postal"),
            "latitude": data.get("latitude"),
            "longitude": data.get("longitude"),
            "timezone": data.get("timezone"),
            "isp": data.get("org"),
            "organization": data.get("org"),
            "asn": data.get("asn"),
        }
    )


def parse_ip_field(payload: Any) -> str:
    """Extract the caller's address from resolvers answering ``{"ip": ...}``."""

    data = _require_mapping(payload, "resolver")
    address = data.get("ip")
    if not isinstance(address, str) or not address.strip():
        raise ProviderFailure("resolver: response lacks an 'ip' field")
    return address.strip()


def _identity(payload: Any) -> Any:
    return payload


PARSERS: dict[str, Parser] = {
    "ip-api": parse_ip_api,
    "ipapi.co": parse_ipapi_co,
    "ip-field": parse_ip_field,
    "raw": _identity,
}

DEFAULT_GEOLOCATION_ENDPOINTS: tuple[tuple[str, str, str], ...] = (
    (
        "ip-api",
        "http://ip-api.com/json/?fields=status,message,country,countryCode,region,"
        "regionName,city,zip,lat,lon,timezone,isp,org,as,query",
        "ip-api",
    ),
    ("ipapi.co", "https://ipapi.co/json/", "ipapi.co"),
)

DEFAULT_IP_RESOLVERS: tuple[tuple[str, str, str], ...] = (
    ("ipify", "https://api.ipify.org?format=json", "ip-field"),
    ("ipify-v6", "https://api64.ipify.org?format=json", "ip-field"),
    ("ipapi.co-ip", "https://ipapi.co/json/", "ip-field"),
)


class JsonHttpSource(AttributeSource):
    """Blocking GET of a JSON document, parsed into a section value."""

    def __init__(
        self,
        name: str,
        url: str,
        *,
        parser: Parser | str | None = None,
        session: requests.Session | None = None,
        timeout_s: float = 5.0,
    ) -> None:
        name_text = name.strip()
        if not name_text:
            raise ValueError("source name must be a non-empty string")
        if not url.strip():
            raise ValueError("source url must be a non-empty string")
        if isinstance(parser, str):
            try:
                parser = PARSERS[parser]
            except KeyError as exc:
                supported = ", ".join(sorted(PARSERS))
                raise ValueError(f"unknown response format: {parser}. supported: {supported}") from exc
        self._name = name_text
        self._url = url.strip()
        self._parser: Parser = parser or _identity
        self._session = session
        self._timeout_s = timeout_s

    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._url

    def fetch(self) -> Any:
        session = self._session or requests.Session()
        try:
            try:
                response = session.get(
                    self._url,
                    timeout=self._timeout_s,
                    headers={"Accept": "application/json"},
                )
            except requests.exceptions.Timeout as exc:
                raise ProviderTimeout(f"{self._name}: request timed out") from exc
            except requests.exceptions.RequestException as exc:
                raise ProviderFailure(f"{self._name}: {exc}") from exc
            with response:
                status = response.status_code
                if not 200 <= status < 300:
                    raise ProviderFailure(f"{self._name}: HTTP {status}")
                try:
                    payload = response.json()
                except ValueError as exc:
                    raise ProviderFailure(f"{self._name}: malformed JSON") from exc
        finally:
            if self._session is None:
                session.close()
        LOGGER.debug("%s answered from %s", self._name, self._url)
        return self._parser(payload)
