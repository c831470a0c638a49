from __future__ import annotations

from visitor_log.session import SessionAccumulator


class _Tick:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_counters_and_snapshot() -> None:
    tick = _Tick()
    session = SessionAccumulator(clock=tick)
    observers = session.observers()

    observers["click"]()
    observers["click"]()
    observers["keydown"]()
    observers["scroll"](35.5)
    observers["scroll"](12.0)
    tick.now = 102.5

    assert session.snapshot() == {
        "clicks": 2,
        "keystrokes": 1,
        "max_scroll_depth": 35.5,
        "duration_ms": 2500,
    }


def test_scroll_depth_is_clamped() -> None:
    session = SessionAccumulator()

    session.on_scroll(-10)
    assert session.max_scroll_depth == 0.0
    session.on_scroll(180)
    assert session.max_scroll_depth == 100.0


def test_close_freezes_counters_and_duration() -> None:
    tick = _Tick()
    session = SessionAccumulator(clock=tick)
    tick.now = 101.0
    session.close()

    session.on_click()
    session.on_keystroke()
    tick.now = 500.0

    snapshot = session.snapshot()
    assert snapshot["clicks"] == 0
    assert snapshot["keystrokes"] == 0
    assert snapshot["duration_ms"] == 1000
    assert session.closed


def test_from_counts() -> None:
    tick = _Tick()

    session = SessionAccumulator.from_counts(
        {"clicks": 3, "keystrokes": -4, "max_scroll_depth": 55, "duration_ms": 1500},
        clock=tick,
    )

    assert session.snapshot() == {
        "clicks": 3,
        "keystrokes": 0,
        "max_scroll_depth": 55.0,
        "duration_ms": 1500,
    }
