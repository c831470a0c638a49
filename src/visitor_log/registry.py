"""Default provider set for one page load."""
from __future__ import annotations

from collections.abc import Sequence
import logging

import requests

from .config import EndpointConfig, Settings
from .ip_reconciliation import AddressOrigin, address_merge
from .observability import EventLogger
from .provider_spi import AttributeProvider
from .providers.fallback import FallbackChainProvider
from .providers.gps import ContextGeolocation, GeolocationPort, GpsProvider
from .providers.http import JsonHttpSource
from .providers.network import LocalAddressSource
from .providers.platform import (
    PROBE_SECTIONS,
    Classifier,
    ClassifierSource,
    ContextSource,
    PageContext,
    ProbeSource,
    SessionSource,
    unknown_classifier,
)
from .providers.race import RaceMergeProvider
from .providers.single import SingleProvider
from .session import SessionAccumulator

__all__ = ["build_default_providers", "http_sources"]

LOGGER = logging.getLogger(__name__)


def http_sources(
    endpoints: Sequence[EndpointConfig],
    *,
    timeout_s: float,
    session: requests.Session | None = None,
) -> list[JsonHttpSource]:
    return [
        JsonHttpSource(
            endpoint.name,
            endpoint.url,
            parser=endpoint.format,
            session=session,
            timeout_s=timeout_s,
        )
        for endpoint in endpoints
    ]


def build_default_providers(
    settings: Settings,
    context: PageContext,
    *,
    classifier: Classifier | None = None,
    session_accumulator: SessionAccumulator | None = None,
    geolocation: GeolocationPort | None = None,
    http_session: requests.Session | None = None,
    event_logger: EventLogger | None = None,
) -> list[AttributeProvider]:
    """Build the fixed provider registry, one entry per record section."""

    classify = classifier or unknown_classifier
    provider_timeout = settings.provider_timeout_s
    providers: list[AttributeProvider] = [
        SingleProvider(ContextSource("page", context.page), section="page", timeout_s=provider_timeout),
        SingleProvider(
            ContextSource("referrer", context.referrer_info),
            section="referrer",
            timeout_s=provider_timeout,
        ),
        FallbackChainProvider(
            http_sources(
                settings.geolocation_endpoints,
                timeout_s=settings.geolocation_timeout_s,
                session=http_session,
            ),
            name="geolocation",
            section="location",
            timeout_s=settings.geolocation_timeout_s * len(settings.geolocation_endpoints),
            source_timeout_s=settings.geolocation_timeout_s,
            enrich=settings.geolocation_enrich,
            event_logger=event_logger,
        ),
    ]

    resolvers = http_sources(
        settings.ip_resolvers, timeout_s=settings.ip_race_timeout_s, session=http_session
    )
    local = LocalAddressSource(candidates=context.local_addresses)
    origins = {source.name(): AddressOrigin.PUBLIC_RESOLVER for source in resolvers}
    origins[local.name()] = AddressOrigin.LOCAL_DISCOVERY
    providers.append(
        RaceMergeProvider(
            [*resolvers, local],
            name="ip-addresses",
            section="network",
            timeout_s=settings.ip_race_timeout_s,
            merge=address_merge(origins),
        )
    )

    for section in ("browser", "os", "device"):
        providers.append(
            SingleProvider(
                ClassifierSource(section, classify, context.user_agent),
                section=section,
                timeout_s=provider_timeout,
            )
        )
    for section in PROBE_SECTIONS:
        providers.append(
            SingleProvider(
                ProbeSource(section, context.probes),
                section=section,
                timeout_s=provider_timeout,
            )
        )
    providers.append(
        SingleProvider(
            ContextSource("timezone", context.timezone_info),
            section="timezone",
            timeout_s=provider_timeout,
        )
    )
    providers.append(
        SingleProvider(
            ContextSource("language", context.language_info),
            section="language",
            timeout_s=provider_timeout,
        )
    )

    port = geolocation
    if port is None and context.gps is not None:
        port = ContextGeolocation(context.gps)
    providers.append(
        GpsProvider(
            port,
            timeout_s=settings.gps_timeout_s,
            high_accuracy=settings.gps_high_accuracy,
        )
    )

    providers.append(
        SingleProvider(
            SessionSource(session_accumulator, counts=context.session),
            section="session",
            timeout_s=provider_timeout,
        )
    )
    LOGGER.debug("built %d providers", len(providers))
    return providers
