"""CLI 共通ユーティリティ。"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
import sys
from typing import Any

from dotenv import load_dotenv

from ..errors import ConfigError

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class JsonLogFormatter(logging.Formatter):
    """JSON 形式でログを吐き出すフォーマッタ。"""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _configure_logging(as_json: bool, *, verbose: bool = False) -> None:
    handler = logging.StreamHandler()
    if as_json:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


def load_env_file(path: Path) -> None:
    if not path.exists():
        raise ConfigError(f".env file not found: {path}")
    load_dotenv(path, override=False)
    LOGGER.info("loaded environment from %s", path)


def read_context(source: str) -> dict[str, Any]:
    """Read the page-context JSON object from ``source`` (``-`` is stdin)."""

    if source == "-":
        text = sys.stdin.read()
    else:
        try:
            text = Path(source).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"context file unreadable: {source}: {exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"context is not valid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError("context must be a JSON object")
    return dict(data)


__all__ = [
    "EXIT_FAILURE",
    "EXIT_OK",
    "EXIT_USAGE",
    "JsonLogFormatter",
    "_configure_logging",
    "load_env_file",
    "read_context",
]
