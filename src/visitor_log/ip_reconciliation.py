"""Deduplicate and classify IP addresses gathered from heterogeneous sources."""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
import ipaddress
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .providers.race import SourceContribution


class IPKind(str, Enum):
    PUBLIC_IPV4 = "PublicIPv4"
    PUBLIC_IPV6 = "PublicIPv6"
    PRIVATE_LAN = "PrivateLAN"
    IPV6_LOCAL = "IPv6Local"


class AddressOrigin(str, Enum):
    """Where an address was observed; earlier members take precedence."""

    PUBLIC_RESOLVER = "public"
    LOCAL_DISCOVERY = "local"


_ORIGIN_PRECEDENCE = {origin: rank for rank, origin in enumerate(AddressOrigin)}

_PRIVATE_V4_NETWORKS = tuple(
    ipaddress.IPv4Network(cidr)
    for cidr in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "169.254.0.0/16")
)


@dataclass(frozen=True, slots=True)
class RawAddress:
    address: str
    source: str
    origin: AddressOrigin = AddressOrigin.PUBLIC_RESOLVER


@dataclass(frozen=True, slots=True)
class IPObservation:
    address: str
    kind: IPKind
    source: str

    def to_dict(self) -> dict[str, str]:
        return {"address": self.address, "kind": self.kind.value, "source": self.source}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IPObservation:
        return cls(str(data["address"]), IPKind(data["kind"]), str(data["source"]))


@dataclass(frozen=True)
class IPReconciliationResult:
    observations: tuple[IPObservation, ...] = ()
    counts: Mapping[IPKind, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.observations)

    @property
    def addresses(self) -> tuple[str, ...]:
        return tuple(observation.address for observation in self.observations)

    def by_kind(self, kind: IPKind) -> tuple[IPObservation, ...]:
        return tuple(obs for obs in self.observations if obs.kind is kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "addresses": [observation.to_dict() for observation in self.observations],
            "counts": {kind.value: int(self.counts.get(kind, 0)) for kind in IPKind},
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IPReconciliationResult:
        observations = tuple(IPObservation.from_dict(entry) for entry in data.get("addresses", ()))
        return cls(observations, _count(observations))


def _count(observations: Sequence[IPObservation]) -> dict[IPKind, int]:
    counts = {kind: 0 for kind in IPKind}
    for observation in observations:
        counts[observation.kind] += 1
    return counts


def classify_address(address: str, origin: AddressOrigin) -> IPKind | None:
    """Return the kind of ``address`` or ``None`` when it must be discarded."""

    text = address.strip()
    if not text:
        return None
    if ":" in text:
        if origin is AddressOrigin.LOCAL_DISCOVERY:
            return IPKind.IPV6_LOCAL
        return IPKind.PUBLIC_IPV6
    if text == "0.0.0.0" or text.startswith("0."):
        return None
    try:
        parsed = ipaddress.IPv4Address(text)
    except ValueError:
        return None
    if any(parsed in network for network in _PRIVATE_V4_NETWORKS):
        return IPKind.PRIVATE_LAN
    return IPKind.PUBLIC_IPV4


def reconcile(observations: Iterable[RawAddress]) -> IPReconciliationResult:
    """Merge raw address reports into one ordered, deduplicated result.

    Public-resolution reports are considered before local discovery so that the
    provenance of an address seen by both is the public resolver; within one
    origin the input order is kept.
    """

    ordered = sorted(
        enumerate(observations),
        key=lambda pair: (_ORIGIN_PRECEDENCE[pair[1].origin], pair[0]),
    )
    seen: set[str] = set()
    accepted: list[IPObservation] = []
    for _, raw in ordered:
        address = raw.address.strip()
        if address in seen:
            continue
        kind = classify_address(address, raw.origin)
        if kind is None:
            continue
        seen.add(address)
        accepted.append(IPObservation(address, kind, raw.source))
    return IPReconciliationResult(tuple(accepted), _count(accepted))


def _extract_addresses(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Mapping):
        for key in ("ip", "address", "query"):
            candidate = value.get(key)
            if isinstance(candidate, str):
                return [candidate]
        return []
    if isinstance(value, Iterable):
        addresses: list[str] = []
        for entry in value:
            addresses.extend(_extract_addresses(entry))
        return addresses
    return []


def raw_addresses(
    contributions: Iterable[SourceContribution],
    origins: Mapping[str, AddressOrigin],
) -> list[RawAddress]:
    """Flatten race-merge contributions into :class:`RawAddress` entries."""

    raw: list[RawAddress] = []
    for contribution in contributions:
        origin = origins.get(contribution.source, AddressOrigin.PUBLIC_RESOLVER)
        for address in _extract_addresses(contribution.value):
            raw.append(RawAddress(address, contribution.source, origin))
    return raw


def address_merge(
    origins: Mapping[str, AddressOrigin],
) -> Callable[[Sequence[SourceContribution]], dict[str, Any]]:
    """Build a race-merge ``merge`` callable that reconciles addresses."""

    def _merge(contributions: Sequence[SourceContribution]) -> dict[str, Any]:
        return reconcile(raw_addresses(contributions, origins)).to_dict()

    return _merge


__all__ = [
    "AddressOrigin",
    "IPKind",
    "IPObservation",
    "IPReconciliationResult",
    "RawAddress",
    "address_merge",
    "classify_address",
    "raw_addresses",
    "reconcile",
]
