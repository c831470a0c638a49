from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
import inspect
from typing import Any, ClassVar, Generic, Protocol, TypeVar, cast

T = TypeVar("T")


class ProviderKind(str, Enum):
    """Execution shapes supported by attribute providers."""

    SINGLE = "single"
    FALLBACK_CHAIN = "fallback-chain"
    RACE_MERGE = "race-merge"


class ResultStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    status: ClassVar[ResultStatus] = ResultStatus.OK


@dataclass(frozen=True, slots=True)
class Failed:
    reason: str
    error: BaseException | None = field(default=None, compare=False, repr=False)

    status: ClassVar[ResultStatus] = ResultStatus.FAILED

    @classmethod
    def from_exception(cls, exc: BaseException) -> Failed:
        message = str(exc).strip()
        reason = f"{type(exc).__name__}: {message}" if message else type(exc).__name__
        return cls(reason, exc)


@dataclass(frozen=True, slots=True)
class TimedOut:
    timeout_s: float | None = None

    status: ClassVar[ResultStatus] = ResultStatus.TIMED_OUT


ProviderResult = Ok[Any] | Failed | TimedOut


class AttributeSource(Protocol):
    """A blocking data source (HTTP lookup, socket probe, ...)."""

    def name(self) -> str: ...
    def fetch(self) -> Any: ...


class AsyncAttributeSource(Protocol):
    def name(self) -> str: ...
    async def fetch_async(self) -> Any: ...


class AttributeProvider(Protocol):
    """Uniform capability interface over single/fallback-chain/race-merge."""

    kind: ProviderKind

    def name(self) -> str: ...

    @property
    def section(self) -> str: ...

    @property
    def timeout_s(self) -> float: ...

    async def execute(self) -> ProviderResult: ...


class _AsyncSourceAdapter(AsyncAttributeSource):
    def __init__(
        self,
        source: AttributeSource | AsyncAttributeSource,
        *,
        async_fetch: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self._source = source
        self._async_fetch = async_fetch

    def name(self) -> str:
        return self._source.name()

    async def fetch_async(self) -> Any:
        if self._async_fetch is not None:
            return await self._async_fetch()
        fetch = getattr(self._source, "fetch", None)
        if not callable(fetch):
            raise TypeError("Source does not expose a synchronous fetch() method")
        return await asyncio.to_thread(fetch)


def ensure_async_source(source: AttributeSource | AsyncAttributeSource) -> AsyncAttributeSource:
    """Return ``source`` as an awaitable source.

    Blocking ``fetch()`` implementations run on a worker thread so that a slow
    lookup never stalls the event loop.
    """

    fetch_async = getattr(source, "fetch_async", None)
    if callable(fetch_async):
        if inspect.iscoroutinefunction(fetch_async):
            return cast(AsyncAttributeSource, source)

        async def _fetch() -> Any:
            result = fetch_async()
            if inspect.isawaitable(result):
                return await cast(Awaitable[Any], result)
            return result

        return _AsyncSourceAdapter(source, async_fetch=_fetch)

    return _AsyncSourceAdapter(source)


__all__ = [
    "AsyncAttributeSource",
    "AttributeProvider",
    "AttributeSource",
    "Failed",
    "Ok",
    "ProviderKind",
    "ProviderResult",
    "ResultStatus",
    "TimedOut",
    "ensure_async_source",
]
