"""共通プロバイダ基底クラス。"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Awaitable, Callable
import inspect
import logging
from typing import Any, cast

from ..errors import ProviderFailure, ProviderTimeout
from ..provider_spi import (
    AsyncAttributeSource,
    Failed,
    Ok,
    ProviderKind,
    ProviderResult,
    TimedOut,
)

__all__ = ["BaseProvider", "CallableSource", "fetch_with_timeout"]

LOGGER = logging.getLogger(__name__)


def _validate_timeout(value: float, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise TypeError(f"{label} must be a number")
    if value <= 0:
        raise ValueError(f"{label} must be positive")
    return float(value)


async def fetch_with_timeout(source: AsyncAttributeSource, timeout_s: float) -> Any:
    """Await ``source`` for at most ``timeout_s`` seconds.

    Raises :class:`ProviderTimeout` on expiry and :class:`ProviderFailure` when
    the source answers with nothing.
    """

    try:
        value = await asyncio.wait_for(source.fetch_async(), timeout=timeout_s)
    except TimeoutError as exc:
        raise ProviderTimeout(f"{source.name()} exceeded {timeout_s:.3f}s") from exc
    if value is None:
        raise ProviderFailure(f"{source.name()} returned no data")
    return value


class CallableSource(AsyncAttributeSource):
    """Adapt a plain function (sync or async) to the source protocol."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Any] | Callable[[], Awaitable[Any]],
        *,
        blocking: bool = False,
    ) -> None:
        name_text = name.strip()
        if not name_text:
            raise ValueError("source name must be a non-empty string")
        self._name = name_text
        self._func = func
        self._blocking = blocking

    def name(self) -> str:
        return self._name

    async def fetch_async(self) -> Any:
        if self._blocking:
            return await asyncio.to_thread(self._func)
        result = self._func()
        if inspect.isawaitable(result):
            return await cast(Awaitable[Any], result)
        return result


class BaseProvider(ABC):
    """AttributeProvider 実装向けの共通ユーティリティ。"""

    kind: ProviderKind = ProviderKind.SINGLE

    def __init__(self, *, name: str, section: str, timeout_s: float) -> None:
        name_text = name.strip()
        if not name_text:
            raise ValueError("provider name must be a non-empty string")
        section_text = section.strip()
        if not section_text:
            raise ValueError("provider section must be a non-empty string")
        self._name = name_text
        self._section = section_text
        self._timeout_s = _validate_timeout(timeout_s, "timeout_s")

    def name(self) -> str:
        return self._name

    @property
    def section(self) -> str:
        return self._section

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._name!r}, section={self._section!r}, "
            f"timeout_s={self._timeout_s})"
        )

    @abstractmethod
    async def execute(self) -> ProviderResult:
        """Run the provider; never raises except on cancellation."""

    async def _run_bounded(self, fetch: Callable[[], Awaitable[Any]]) -> ProviderResult:
        try:
            value = await asyncio.wait_for(fetch(), timeout=self._timeout_s)
        except (TimeoutError, ProviderTimeout):
            LOGGER.debug("provider %s timed out after %.3fs", self._name, self._timeout_s)
            return TimedOut(self._timeout_s)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("provider %s failed: %s", self._name, exc)
            return Failed.from_exception(exc)
        if value is None:
            return Failed(f"{self._name} returned no data")
        return Ok(value)
