"""Concurrent accumulate-until-deadline provider."""
from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
import logging
from typing import Any

from ..provider_spi import (
    AsyncAttributeSource,
    AttributeSource,
    Failed,
    Ok,
    ProviderKind,
    ProviderResult,
    TimedOut,
    ensure_async_source,
)
from .base import BaseProvider

__all__ = ["RaceMergeProvider", "SourceContribution", "union_merge"]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SourceContribution:
    source: str
    value: Any


Merge = Callable[[Sequence[SourceContribution]], Any]


def _items(value: Any) -> Iterable[Any]:
    if isinstance(value, str | bytes | Mapping):
        return (value,)
    if isinstance(value, Iterable):
        return value
    return (value,)


def union_merge(contributions: Sequence[SourceContribution]) -> list[SourceContribution]:
    """Flatten contributions into unique items tagged with the first source seen."""

    seen: set[Any] = set()
    merged: list[SourceContribution] = []
    for contribution in contributions:
        for item in _items(contribution.value):
            try:
                key = item if not isinstance(item, Mapping) else tuple(sorted(item.items()))
                hash(key)
            except TypeError:
                key = repr(item)
            if key in seen:
                continue
            seen.add(key)
            merged.append(SourceContribution(contribution.source, item))
    return merged


class RaceMergeProvider(BaseProvider):
    """Issue every source at once and merge whatever answers before ``timeout_s``.

    Sources that raise or are still running at the deadline are simply absent
    from the merge. Arrival order is kept in the contributions handed to
    ``merge`` but is not deterministic across runs.
    """

    kind = ProviderKind.RACE_MERGE

    def __init__(
        self,
        sources: Sequence[AttributeSource | AsyncAttributeSource],
        *,
        name: str,
        section: str,
        timeout_s: float,
        merge: Merge | None = None,
    ) -> None:
        if not sources:
            raise ValueError("sources must not be empty")
        super().__init__(name=name, section=section, timeout_s=timeout_s)
        self._sources = [ensure_async_source(source) for source in sources]
        self._merge: Merge = merge or union_merge

    @property
    def source_names(self) -> tuple[str, ...]:
        return tuple(source.name() for source in self._sources)

    async def execute(self) -> ProviderResult:
        contributions: list[SourceContribution] = []
        failures: list[str] = []

        async def _run(source: AsyncAttributeSource) -> None:
            try:
                value = await source.fetch_async()
            except Exception as exc:  # noqa: BLE001
                LOGGER.debug("%s: source %s failed: %s", self.name(), source.name(), exc)
                failures.append(f"{source.name()}: {type(exc).__name__}: {exc}")
                return
            if value is None:
                failures.append(f"{source.name()}: no data")
                return
            contributions.append(SourceContribution(source.name(), value))

        tasks = [asyncio.create_task(_run(source)) for source in self._sources]
        try:
            _, pending = await asyncio.wait(tasks, timeout=self.timeout_s)
            snapshot = tuple(contributions)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if not snapshot:
            if pending:
                return TimedOut(self.timeout_s)
            return Failed("; ".join(failures) or f"{self.name()} produced no result")
        try:
            merged = self._merge(snapshot)
        except Exception as exc:  # noqa: BLE001
            return Failed.from_exception(exc)
        return Ok(merged)
