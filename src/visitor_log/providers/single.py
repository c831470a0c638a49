"""Single-call provider."""
from __future__ import annotations

from ..provider_spi import (
    AsyncAttributeSource,
    AttributeSource,
    ProviderKind,
    ProviderResult,
    ensure_async_source,
)
from .base import BaseProvider

__all__ = ["SingleProvider"]


class SingleProvider(BaseProvider):
    """Invoke one source once under ``timeout_s``."""

    kind = ProviderKind.SINGLE

    def __init__(
        self,
        source: AttributeSource | AsyncAttributeSource,
        *,
        section: str,
        timeout_s: float,
        name: str | None = None,
    ) -> None:
        self._source = ensure_async_source(source)
        super().__init__(name=name or self._source.name(), section=section, timeout_s=timeout_s)

    async def execute(self) -> ProviderResult:
        return await self._run_bounded(self._source.fetch_async)
