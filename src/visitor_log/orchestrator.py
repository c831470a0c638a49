"""Concurrent orchestration of attribute providers under one deadline."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
import logging
import time
from typing import Any

from .observability import EventLogger, emit_event
from .provider_spi import AttributeProvider, Failed, Ok, ProviderResult, TimedOut
from .record import CompositeRecord, RecordClock, build_record
from .utils import elapsed_ms

LOGGER = logging.getLogger(__name__)

DEFAULT_OVERALL_DEADLINE_S = 10.0
_CANCEL_GRACE_S = 0.05


def _merge_section(existing: ProviderResult | None, incoming: ProviderResult) -> ProviderResult:
    """Combine two results for the same section; the earlier provider wins on conflict."""

    if existing is None:
        return incoming
    if not isinstance(existing, Ok):
        return incoming if isinstance(incoming, Ok) else existing
    if not isinstance(incoming, Ok):
        return existing
    if isinstance(existing.value, Mapping) and isinstance(incoming.value, Mapping):
        merged: dict[str, Any] = dict(incoming.value)
        merged.update(existing.value)
        return Ok(merged)
    return existing


async def _settle(provider: AttributeProvider) -> tuple[ProviderResult, int]:
    started = time.time()
    try:
        result = await provider.execute()
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("provider %s raised instead of returning a result", provider.name())
        result = Failed.from_exception(exc)
    return result, elapsed_ms(started)


async def run_all(
    providers: Sequence[AttributeProvider],
    overall_deadline_s: float = DEFAULT_OVERALL_DEADLINE_S,
    *,
    clock: RecordClock | None = None,
    event_logger: EventLogger | None = None,
) -> CompositeRecord:
    """Run ``providers`` concurrently and assemble one record.

    Returns once every provider settled or ``overall_deadline_s`` elapsed.
    Providers still pending at the deadline are cancelled and reported as
    timed out; whatever they produce afterwards is never applied.
    """

    if overall_deadline_s <= 0:
        raise ValueError("overall_deadline_s must be positive")
    run_started = time.time()
    tasks = [
        (provider, asyncio.create_task(_settle(provider), name=f"provider:{provider.name()}"))
        for provider in providers
    ]
    pending: set[asyncio.Task[Any]] = set()
    try:
        if tasks:
            _, pending = await asyncio.wait(
                [task for _, task in tasks], timeout=overall_deadline_s
            )
    finally:
        for _, task in tasks:
            if not task.done():
                task.cancel()
    if pending:
        await asyncio.wait(pending, timeout=_CANCEL_GRACE_S)

    results: dict[str, ProviderResult] = {}
    for provider, task in tasks:
        if task in pending or task.cancelled():
            result: ProviderResult = TimedOut(overall_deadline_s)
            latency_ms = elapsed_ms(run_started)
        else:
            result, latency_ms = task.result()
        _log_outcome(event_logger, provider, result, latency_ms)
        results[provider.section] = _merge_section(results.get(provider.section), result)

    record = build_record(results, clock=clock)
    emit_event(
        event_logger,
        "record_assembled",
        record_id=record.id,
        sections_ok=list(record.present_sections),
        sections_absent=list(record.absent_sections),
        latency_ms=elapsed_ms(run_started),
        deadline_hit=bool(pending),
    )
    if pending:
        LOGGER.info(
            "overall deadline %.3fs reached with %d provider(s) pending",
            overall_deadline_s,
            len(pending),
        )
    return record


def _log_outcome(
    event_logger: EventLogger | None,
    provider: AttributeProvider,
    result: ProviderResult,
    latency_ms: int,
) -> None:
    error = result.reason if isinstance(result, Failed) else None
    emit_event(
        event_logger,
        "provider_outcome",
        provider=provider.name(),
        section=provider.section,
        kind=provider.kind.value,
        status=result.status.value,
        latency_ms=latency_ms,
        error=error,
    )


class Orchestrator:
    """Holds the provider registry and runs it once per page load."""

    def __init__(
        self,
        providers: Sequence[AttributeProvider] = (),
        *,
        overall_deadline_s: float = DEFAULT_OVERALL_DEADLINE_S,
        clock: RecordClock | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        if overall_deadline_s <= 0:
            raise ValueError("overall_deadline_s must be positive")
        self._providers = tuple(providers)
        self._overall_deadline_s = float(overall_deadline_s)
        self._clock = clock
        self._event_logger = event_logger

    @property
    def providers(self) -> tuple[AttributeProvider, ...]:
        return self._providers

    @property
    def overall_deadline_s(self) -> float:
        return self._overall_deadline_s

    async def run_all(
        self,
        providers: Sequence[AttributeProvider] | None = None,
        overall_deadline_s: float | None = None,
    ) -> CompositeRecord:
        return await run_all(
            self._providers if providers is None else providers,
            self._overall_deadline_s if overall_deadline_s is None else overall_deadline_s,
            clock=self._clock,
            event_logger=self._event_logger,
        )


__all__ = ["DEFAULT_OVERALL_DEADLINE_S", "Orchestrator", "run_all"]
