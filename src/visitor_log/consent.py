"""Three-state consent gate deciding whether collection runs at all."""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
import json
import logging

from .errors import ConsentError
from .observability import EventLogger, emit_event
from .store import KeyValueStorage

LOGGER = logging.getLogger(__name__)

CONSENT_KEY = "visitor_cookie_consent"


class ConsentState(str, Enum):
    UNDECIDED = "undecided"
    ACCEPTED = "accepted"
    DECLINED = "declined"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConsentGate:
    """Persisted consent decision, read once when the gate is created.

    ``UNDECIDED`` moves to ``ACCEPTED`` or ``DECLINED`` exactly once; only an
    explicit :meth:`reset` reopens the decision. Deployments configured with
    ``skip_decision`` start (and persist) ``ACCEPTED`` without prompting.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        key: str = CONSENT_KEY,
        skip_decision: bool = False,
        event_logger: EventLogger | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._key = key
        self._event_logger = event_logger
        self._now = now
        self._decided_in_process = False
        self._state, self._decided_at = self._load()
        if skip_decision and self._state is ConsentState.UNDECIDED:
            self._write(ConsentState.ACCEPTED)

    def _load(self) -> tuple[ConsentState, str | None]:
        try:
            raw = self._storage.read(self._key)
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("consent state unreadable, treating as undecided: %s", exc)
            return ConsentState.UNDECIDED, None
        if raw is None:
            return ConsentState.UNDECIDED, None
        text = raw.strip()
        decided_at: str | None = None
        try:
            payload = json.loads(text)
        except ValueError:
            # bare scalar written by earlier deployments
            payload = text
        if isinstance(payload, dict):
            value = payload.get("state")
            stamp = payload.get("decided_at")
            decided_at = stamp if isinstance(stamp, str) else None
        else:
            value = payload
        try:
            return ConsentState(value), decided_at
        except ValueError:
            LOGGER.warning("unknown consent value %r, treating as undecided", value)
            return ConsentState.UNDECIDED, None

    def _write(self, state: ConsentState) -> None:
        decided_at = self._now().isoformat()
        self._storage.write(
            self._key, json.dumps({"state": state.value, "decided_at": decided_at})
        )
        self._state = state
        self._decided_at = decided_at
        self._decided_in_process = True
        emit_event(self._event_logger, "consent_decided", state=state.value)

    @property
    def state(self) -> ConsentState:
        return self._state

    @property
    def decided_at(self) -> str | None:
        return self._decided_at

    @property
    def decided_in_process(self) -> bool:
        """True when the current decision was recorded by this process."""

        return self._decided_in_process

    def needs_decision(self) -> bool:
        return self._state is ConsentState.UNDECIDED

    def allows_collection(self) -> bool:
        return self._state is ConsentState.ACCEPTED

    def decide(self, state: ConsentState | str) -> ConsentState:
        decision = ConsentState(state)
        if decision is ConsentState.UNDECIDED:
            raise ValueError("a decision must be accepted or declined")
        if self._state is not ConsentState.UNDECIDED:
            raise ConsentError(f"consent already {self._state.value}")
        self._write(decision)
        LOGGER.info("consent %s", decision.value)
        return decision

    def reset(self) -> None:
        """Operator action returning the gate to ``UNDECIDED``."""

        self._storage.delete(self._key)
        self._state = ConsentState.UNDECIDED
        self._decided_at = None
        self._decided_in_process = False
        emit_event(self._event_logger, "consent_decided", state=ConsentState.UNDECIDED.value)


__all__ = ["CONSENT_KEY", "ConsentGate", "ConsentState"]
