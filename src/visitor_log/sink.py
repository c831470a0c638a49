"""Best-effort delivery of new records to a remote endpoint."""
from __future__ import annotations

from collections.abc import Mapping
import logging
import os
import threading
from typing import Any, Protocol

import requests

from .errors import SinkDeliveryFailure
from .observability import EventLogger, emit_event
from .record import CompositeRecord
from .utils import decode_config_value

LOGGER = logging.getLogger(__name__)

DEFAULT_SINK_ENV = "VISITOR_LOG_SINK_URL"


class RecordSink(Protocol):
    def deliver(self, record: CompositeRecord) -> None: ...


class NullSink:
    """Sink used when no endpoint is configured."""

    def deliver(self, record: CompositeRecord) -> None:
        return None

    def flush(self, timeout_s: float | None = None) -> None:
        return None


class HttpSink:
    """POST each record as JSON on a background thread.

    Delivery is fire-and-forget: errors are logged at debug level, reported as
    ``sink_failed`` events and otherwise dropped. Nothing is retried.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        session: requests.Session | None = None,
        timeout_s: float = 5.0,
        event_logger: EventLogger | None = None,
        background: bool = True,
    ) -> None:
        endpoint_text = endpoint.strip()
        if not endpoint_text:
            raise ValueError("sink endpoint must be a non-empty string")
        self._endpoint = endpoint_text
        self._session = session
        self._timeout_s = timeout_s
        self._event_logger = event_logger
        self._background = background
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def deliver(self, record: CompositeRecord) -> None:
        payload = record.to_dict()
        if not self._background:
            self._send(record.id, payload)
            return
        thread = threading.Thread(
            target=self._send,
            args=(record.id, payload),
            name=f"visitor-log-sink-{record.id[:8]}",
            daemon=True,
        )
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        thread.start()

    def flush(self, timeout_s: float | None = None) -> None:
        """Wait up to ``timeout_s`` for in-flight deliveries (used before exit)."""

        with self._lock:
            threads = tuple(self._threads)
        for thread in threads:
            thread.join(timeout_s)

    def _post(self, payload: Mapping[str, Any]) -> None:
        session = self._session or requests.Session()
        try:
            response = session.post(self._endpoint, json=dict(payload), timeout=self._timeout_s)
            status = getattr(response, "status_code", 0)
            if not 200 <= int(status) < 400:
                raise SinkDeliveryFailure(f"endpoint responded with HTTP {status}")
        finally:
            if self._session is None:
                session.close()

    def _send(self, record_id: str, payload: Mapping[str, Any]) -> None:
        try:
            self._post(payload)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("sink delivery for %s failed: %s", record_id, exc)
            emit_event(
                self._event_logger,
                "sink_failed",
                record_id=record_id,
                error=f"{type(exc).__name__}: {exc}",
            )


def resolve_sink_endpoint(
    env_var: str = DEFAULT_SINK_ENV,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Read the sink endpoint from ``env_var``; ``b64:`` values are decoded."""

    value = (os.environ if environ is None else environ).get(env_var)
    if value is None or not value.strip():
        return None
    try:
        return decode_config_value(value) or None
    except ValueError:
        LOGGER.warning("ignoring malformed sink endpoint in %s", env_var)
        return None


__all__ = [
    "DEFAULT_SINK_ENV",
    "HttpSink",
    "NullSink",
    "RecordSink",
    "resolve_sink_endpoint",
]
