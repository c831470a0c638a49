"""Sequential primary/backup provider."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
import logging
from typing import Any

from ..errors import ProviderTimeout
from ..observability import EventLogger, emit_event
from ..provider_spi import (
    AsyncAttributeSource,
    AttributeSource,
    Failed,
    Ok,
    ProviderKind,
    ProviderResult,
    ensure_async_source,
)
from .base import BaseProvider, _validate_timeout, fetch_with_timeout

__all__ = ["FallbackChainProvider", "merge_missing_fields"]

LOGGER = logging.getLogger(__name__)


def merge_missing_fields(primary: Mapping[str, Any], secondary: Mapping[str, Any]) -> dict[str, Any]:
    """Fill keys that ``primary`` lacks (or holds as ``None``) from ``secondary``."""

    merged = dict(primary)
    for key, value in secondary.items():
        if merged.get(key) is None and value is not None:
            merged[key] = value
    return merged


class FallbackChainProvider(BaseProvider):
    """Try sources strictly in order; the first success wins.

    With ``enrich=True`` the remaining sources are still consulted after the
    first success and their mapping results fill in missing keys; the earlier
    source wins on conflict. A source that fails or times out contributes
    nothing, partial data included.
    """

    kind = ProviderKind.FALLBACK_CHAIN

    def __init__(
        self,
        sources: Sequence[AttributeSource | AsyncAttributeSource],
        *,
        name: str,
        section: str,
        timeout_s: float,
        source_timeout_s: float | None = None,
        enrich: bool = False,
        event_logger: EventLogger | None = None,
    ) -> None:
        if not sources:
            raise ValueError("sources must not be empty")
        super().__init__(name=name, section=section, timeout_s=timeout_s)
        self._sources = [ensure_async_source(source) for source in sources]
        self._source_timeout_s = (
            self.timeout_s
            if source_timeout_s is None
            else _validate_timeout(source_timeout_s, "source_timeout_s")
        )
        self._enrich = enrich
        self._event_logger = event_logger

    @property
    def source_names(self) -> tuple[str, ...]:
        return tuple(source.name() for source in self._sources)

    async def execute(self) -> ProviderResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_s
        merged: Any = None
        succeeded = False
        last_error: BaseException | None = None

        for attempt_index, source in enumerate(self._sources, start=1):
            remaining = deadline - loop.time()
            if remaining <= 0:
                last_error = ProviderTimeout(f"{self.name()} exhausted {self.timeout_s:.3f}s")
                break
            try:
                value = await fetch_with_timeout(
                    source, min(self._source_timeout_s, remaining)
                )
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                if not succeeded:
                    self._emit_fallback(source.name(), attempt_index, exc)
                continue

            if not succeeded:
                merged = value
                succeeded = True
                if not self._enrich:
                    break
                continue
            if isinstance(merged, Mapping) and isinstance(value, Mapping):
                merged = merge_missing_fields(merged, value)

        if succeeded:
            return Ok(merged)
        if last_error is None:
            return Failed(f"{self.name()} produced no result")
        return Failed.from_exception(last_error)

    def _emit_fallback(self, source: str, attempt: int, error: BaseException) -> None:
        LOGGER.info(
            "%s: source %s failed (%s); trying next source", self.name(), source, error
        )
        emit_event(
            self._event_logger,
            "source_fallback",
            provider=self.name(),
            section=self.section,
            source=source,
            attempt=attempt,
            total_sources=len(self._sources),
            error_type=type(error).__name__,
            error_message=str(error),
        )
