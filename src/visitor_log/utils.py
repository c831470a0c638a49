"""Utility helpers shared across the collector."""

from __future__ import annotations

import base64
import binascii
import time
from collections.abc import Sequence
from typing import Any


def ensure_str_list(value: Any) -> list[str]:
    """Return a list of non-empty strings extracted from ``value``."""

    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        return [text] if text else []
    parts: list[str] = []
    if isinstance(value, Sequence):
        for entry in value:
            if isinstance(entry, str):
                text = entry.strip()
                if text:
                    parts.append(text)
    return parts


def elapsed_ms(start_ts: float, *, now: float | None = None) -> int:
    """Return elapsed time in milliseconds since ``start_ts``."""

    current = time.time() if now is None else now
    return max(0, int((current - start_ts) * 1000))


def decode_config_value(value: str) -> str:
    """Decode ``b64:``-prefixed configuration strings; plain values pass through."""

    text = value.strip()
    if not text.startswith("b64:"):
        return text
    try:
        return base64.b64decode(text[4:], validate=True).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ValueError("invalid base64 configuration value") from exc


__all__ = ["decode_config_value", "elapsed_ms", "ensure_str_list"]
