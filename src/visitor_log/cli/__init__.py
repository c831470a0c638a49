from __future__ import annotations

from .app import main
from .args import parse_args

__all__ = ["main", "parse_args"]
