"""Per-page-load interaction counters."""
from __future__ import annotations

from collections.abc import Callable, Mapping
import time
from typing import Any


class SessionAccumulator:
    """Interaction counters living from page load to page unload.

    Event observers registered by the host call :meth:`on_click`,
    :meth:`on_keystroke` and :meth:`on_scroll`; the session provider reads
    :meth:`snapshot` once while the record is assembled. Events arriving after
    :meth:`close` are ignored.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started = clock()
        self._ended: float | None = None
        self.clicks = 0
        self.keystrokes = 0
        self.max_scroll_depth = 0.0

    @classmethod
    def from_counts(
        cls,
        data: Mapping[str, Any],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> SessionAccumulator:
        """Rebuild an accumulator from counters reported by the host."""

        accumulator = cls(clock=clock)
        accumulator.clicks = max(0, int(data.get("clicks", 0) or 0))
        accumulator.keystrokes = max(0, int(data.get("keystrokes", 0) or 0))
        accumulator.on_scroll(float(data.get("max_scroll_depth", 0.0) or 0.0))
        duration_ms = data.get("duration_ms")
        if duration_ms is not None:
            accumulator._started = accumulator._clock() - max(0.0, float(duration_ms)) / 1000.0
        return accumulator

    @property
    def closed(self) -> bool:
        return self._ended is not None

    def on_click(self) -> None:
        if not self.closed:
            self.clicks += 1

    def on_keystroke(self) -> None:
        if not self.closed:
            self.keystrokes += 1

    def on_scroll(self, depth_percent: float) -> None:
        if self.closed:
            return
        depth = min(100.0, max(0.0, float(depth_percent)))
        if depth > self.max_scroll_depth:
            self.max_scroll_depth = depth

    def observers(self) -> dict[str, Callable[..., None]]:
        """Return event-name to callback bindings for the host's event bus."""

        return {
            "click": self.on_click,
            "keydown": self.on_keystroke,
            "scroll": self.on_scroll,
        }

    def close(self) -> None:
        if self._ended is None:
            self._ended = self._clock()

    def snapshot(self) -> dict[str, Any]:
        end = self._ended if self._ended is not None else self._clock()
        return {
            "clicks": self.clicks,
            "keystrokes": self.keystrokes,
            "max_scroll_depth": round(self.max_scroll_depth, 2),
            "duration_ms": max(0, int((end - self._started) * 1000)),
        }


__all__ = ["SessionAccumulator"]
