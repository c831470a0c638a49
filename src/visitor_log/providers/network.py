"""Local network discovery."""
from __future__ import annotations

from collections.abc import Sequence
import ipaddress
import logging
import socket

from ..provider_spi import AttributeSource
from ..utils import ensure_str_list

__all__ = ["LocalAddressSource", "discover_local_addresses", "is_reportable_address"]

LOGGER = logging.getLogger(__name__)

# Documentation-range targets; connecting a UDP socket sends no packets.
_ROUTE_PROBES = ((socket.AF_INET, "192.0.2.1"), (socket.AF_INET6, "2001:db8::1"))


def is_reportable_address(address: str) -> bool:
    """False for loopback, unspecified and multicast addresses."""

    try:
        parsed = ipaddress.ip_address(address)
    except ValueError:
        return False
    return not (parsed.is_loopback or parsed.is_unspecified or parsed.is_multicast)


def _routed_address(family: int, target: str) -> str | None:
    try:
        with socket.socket(family, socket.SOCK_DGRAM) as sock:
            sock.connect((target, 9))
            return str(sock.getsockname()[0]).split("%", 1)[0]
    except OSError:
        return None


def discover_local_addresses() -> list[str]:
    """Return this host's interface addresses, outbound-route addresses first."""

    found: list[str] = []
    for family, target in _ROUTE_PROBES:
        address = _routed_address(family, target)
        if address:
            found.append(address)
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None)
    except OSError as exc:
        LOGGER.debug("hostname lookup failed: %s", exc)
        infos = []
    for _family, _type, _proto, _canon, sockaddr in infos:
        address = str(sockaddr[0]).split("%", 1)[0]
        if address not in found:
            found.append(address)
    return [address for address in found if is_reportable_address(address)]


class LocalAddressSource(AttributeSource):
    """Addresses obtained by local discovery (host-reported candidates win)."""

    def __init__(
        self,
        name: str = "local-discovery",
        *,
        candidates: Sequence[str] | None = None,
    ) -> None:
        self._name = name
        self._candidates = ensure_str_list(candidates) if candidates else None

    def name(self) -> str:
        return self._name

    def fetch(self) -> list[str]:
        if self._candidates is not None:
            return list(self._candidates)
        return discover_local_addresses()
