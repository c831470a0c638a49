"""pytest 共通フィクスチャ。"""

from __future__ import annotations

import pytest

from visitor_log.record import RecordClock
from visitor_log.store import MemoryStorage

from _fakes import CapturingLogger, FakeClock


@pytest.fixture
def event_logger() -> CapturingLogger:
    return CapturingLogger()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def record_clock() -> RecordClock:
    return RecordClock(FakeClock())


@pytest.fixture(autouse=True)
def _no_sink_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VISITOR_LOG_SINK_URL", raising=False)
