"""Normalized exception hierarchy for the visitor log core."""

from __future__ import annotations


class VisitorLogError(Exception):
    """Base class for visitor-log originated errors."""


class ProviderError(VisitorLogError):
    """Base class for errors that providers convert into results."""


class ProviderFailure(ProviderError):
    """Raised when a source errors or returns an unexpected shape."""


class ProviderTimeout(ProviderError):
    """Raised when a source exceeds its timeout."""


class PersistenceReadFailure(VisitorLogError):
    """Raised when persisted state cannot be decoded."""


class SinkDeliveryFailure(VisitorLogError):
    """Raised by sinks when the remote endpoint rejects a record."""


class ConsentError(VisitorLogError):
    """Raised when a consent decision is not allowed in the current state."""


class ConfigError(VisitorLogError):
    """Raised when settings are invalid."""


__all__ = [
    "VisitorLogError",
    "ProviderError",
    "ProviderFailure",
    "ProviderTimeout",
    "PersistenceReadFailure",
    "SinkDeliveryFailure",
    "ConsentError",
    "ConfigError",
]
