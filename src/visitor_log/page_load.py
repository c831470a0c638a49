"""Page-load entry point: consent gate, orchestration, store and sink."""
from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
import inspect
import logging
from typing import cast

from .consent import ConsentGate, ConsentState
from .observability import EventLogger, emit_event
from .orchestrator import Orchestrator
from .provider_spi import AttributeProvider
from .record import CompositeRecord
from .sink import NullSink, RecordSink
from .store import TelemetryLogStore

__all__ = ["ConsentPrompt", "VisitorLogger"]

LOGGER = logging.getLogger(__name__)

ConsentPrompt = Callable[[], "ConsentState | str | None | Awaitable[ConsentState | str | None]"]


class VisitorLogger:
    """Wire the consent gate, orchestrator, log store and sink together.

    ``prompt`` stands in for the decision UI: it is asked once while the gate is
    undecided and answers ``accepted``, ``declined`` or ``None`` (dismissed).
    """

    def __init__(
        self,
        gate: ConsentGate,
        store: TelemetryLogStore,
        orchestrator: Orchestrator,
        *,
        sink: RecordSink | None = None,
        prompt: ConsentPrompt | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        self._gate = gate
        self._store = store
        self._orchestrator = orchestrator
        self._sink: RecordSink = sink or NullSink()
        self._prompt = prompt
        self._event_logger = event_logger
        self._handled_loads = 0

    @property
    def gate(self) -> ConsentGate:
        return self._gate

    @property
    def store(self) -> TelemetryLogStore:
        return self._store

    async def _ask(self) -> None:
        if self._prompt is None:
            return
        answer = self._prompt()
        if inspect.isawaitable(answer):
            answer = await cast(Awaitable[ConsentState | str | None], answer)
        if answer is None:
            LOGGER.info("consent prompt dismissed without a decision")
            return
        try:
            decision: ConsentState | None = ConsentState(answer)
        except ValueError:
            decision = None
        if decision is None or decision is ConsentState.UNDECIDED:
            LOGGER.warning("ignoring consent prompt answer %r", answer)
            return
        self._gate.decide(decision)

    async def handle_page_load(
        self,
        providers: Sequence[AttributeProvider] | None = None,
    ) -> CompositeRecord | None:
        """Collect and store one record; ``None`` when consent does not allow it."""

        if self._gate.needs_decision():
            await self._ask()
        if not self._gate.allows_collection():
            LOGGER.debug("collection skipped: consent %s", self._gate.state.value)
            emit_event(
                self._event_logger, "collection_skipped", consent=self._gate.state.value
            )
            return None

        record = await self._orchestrator.run_all(providers)
        returning = self._handled_loads > 0 or not self._gate.decided_in_process
        record = record.with_consent(
            consent_given=True,
            consent_time=None if returning else self._gate.decided_at,
            returning_visitor=returning,
        )
        self._handled_loads += 1

        try:
            self._store.append(record)
        except OSError as exc:
            LOGGER.warning("visitor log not persisted, previous state kept: %s", exc)
            return record

        try:
            self._sink.deliver(record)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("sink rejected record %s: %s", record.id, exc)
        return record
