from __future__ import annotations

import io
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from visitor_log.observability import CompositeLogger, JsonlLogger, StdLogger, emit_event

from _fakes import CapturingLogger


class _BrokenLogger:
    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        raise RuntimeError("disk gone")


def test_jsonl_logger_appends_lines(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "events.jsonl"
    logger = JsonlLogger(path)

    emit_event(logger, "store_appended", record_id="r1", size=1)
    emit_event(logger, "store_cleared")

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in lines] == ["store_appended", "store_cleared"]
    assert lines[0]["record_id"] == "r1"
    assert isinstance(lines[0]["ts"], int)


def test_std_logger_writes_json_to_stream() -> None:
    stream = io.StringIO()

    StdLogger(stream).emit("consent_decided", {"state": "declined"})

    assert json.loads(stream.getvalue()) == {"state": "declined", "event": "consent_decided"}


def test_composite_logger_isolates_failures() -> None:
    capturing = CapturingLogger()
    composite = CompositeLogger([_BrokenLogger()])
    composite.add(capturing)

    emit_event(composite, "sink_failed", record_id="r1")

    assert capturing.of_type("sink_failed")[0]["record_id"] == "r1"
    composite.clear()
    emit_event(composite, "sink_failed", record_id="r2")
    assert len(capturing.events) == 1


def test_emit_event_without_logger_is_noop() -> None:
    emit_event(None, "store_cleared")
