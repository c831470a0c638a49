from .base import BaseProvider, CallableSource
from .fallback import FallbackChainProvider
from .gps import GpsProvider
from .race import RaceMergeProvider
from .single import SingleProvider

__all__ = [
    "BaseProvider",
    "CallableSource",
    "FallbackChainProvider",
    "GpsProvider",
    "RaceMergeProvider",
    "SingleProvider",
]
