from __future__ import annotations

import argparse
import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
import json
import logging
from pathlib import Path
import sys
from typing import Any

import requests

from ..config import Settings, load_settings
from ..consent import ConsentGate, ConsentState
from ..errors import ConfigError, ConsentError
from ..exporter import EXPORT_FORMATS, write_exports
from ..observability import EventLogger, JsonlLogger
from ..orchestrator import Orchestrator
from ..page_load import VisitorLogger
from ..providers.platform import Classifier, Labels, PageContext, unknown_classifier
from ..registry import build_default_providers
from ..sink import HttpSink, NullSink, RecordSink, resolve_sink_endpoint
from ..store import FileStorage, TelemetryLogStore
from .args import parse_args
from .utils import (
    EXIT_FAILURE,
    EXIT_OK,
    EXIT_USAGE,
    _configure_logging,
    load_env_file,
    read_context,
)

LOGGER = logging.getLogger(__name__)

NO_LOGS_MESSAGE = "No visitor logs found."


def _event_logger(settings: Settings) -> EventLogger | None:
    if settings.metrics_path is None:
        return None
    return JsonlLogger(settings.metrics_path)


def _open_store(settings: Settings, event_logger: EventLogger | None) -> TelemetryLogStore:
    return TelemetryLogStore(
        FileStorage(settings.state_dir),
        capacity=settings.capacity,
        key=settings.logs_key,
        event_logger=event_logger,
    )


def _open_gate(
    settings: Settings,
    event_logger: EventLogger | None,
    *,
    apply_skip: bool = True,
) -> ConsentGate:
    return ConsentGate(
        FileStorage(settings.state_dir),
        key=settings.consent_key,
        skip_decision=settings.skip_consent and apply_skip,
        event_logger=event_logger,
    )


def _classifier_for(raw: Mapping[str, Any]) -> Classifier:
    labels = raw.get("labels")
    if not isinstance(labels, Mapping):
        return unknown_classifier
    reported: Labels = {key: str(value) for key, value in labels.items()}  # type: ignore[misc]

    def _reported(user_agent: str) -> Labels:
        return reported

    return _reported


def _sink_for(settings: Settings, session: requests.Session, event_logger: EventLogger | None) -> RecordSink:
    endpoint = resolve_sink_endpoint(settings.sink_endpoint_env)
    if endpoint is None:
        return NullSink()
    return HttpSink(
        endpoint,
        session=session,
        timeout_s=settings.sink_timeout_s,
        event_logger=event_logger,
    )


def cmd_collect(args: argparse.Namespace, settings: Settings) -> int:
    raw = read_context(args.context)
    try:
        context = PageContext.from_mapping(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid page context: {exc}") from exc

    event_logger = _event_logger(settings)
    gate = _open_gate(settings, event_logger)
    store = _open_store(settings, event_logger)
    answer = args.consent

    def _prompt() -> ConsentState | None:
        if answer is None:
            return None
        return ConsentState.ACCEPTED if answer == "accept" else ConsentState.DECLINED

    with requests.Session() as session:
        sink = _sink_for(settings, session, event_logger)
        providers = build_default_providers(
            settings,
            context,
            classifier=_classifier_for(raw),
            http_session=session,
            event_logger=event_logger,
        )
        orchestrator = Orchestrator(
            providers,
            overall_deadline_s=settings.overall_deadline_s,
            event_logger=event_logger,
        )
        visitor_logger = VisitorLogger(
            gate,
            store,
            orchestrator,
            sink=sink,
            prompt=_prompt,
            event_logger=event_logger,
        )
        record = asyncio.run(visitor_logger.handle_page_load())
        flush = getattr(sink, "flush", None)
        if callable(flush):
            flush(settings.sink_timeout_s)

    if record is None:
        print(f"Collection skipped: consent {gate.state.value}")
        return EXIT_OK
    print(json.dumps(record.to_dict(), ensure_ascii=False, indent=2))
    return EXIT_OK


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(settings, _event_logger(settings))
    if len(store) == 0:
        print(NO_LOGS_MESSAGE)
        return EXIT_OK
    print(json.dumps(store.snapshot(), ensure_ascii=False, indent=2))
    return EXIT_OK


def cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(settings, _event_logger(settings))
    formats = EXPORT_FORMATS if args.format == "both" else (args.format,)
    written = write_exports(
        store.read_all(),
        Path(args.out),
        formats=formats,
        prefix=settings.export_prefix,
    )
    if not written:
        print(NO_LOGS_MESSAGE)
        return EXIT_OK
    for path in written:
        print(path)
    return EXIT_OK


def cmd_clear(args: argparse.Namespace, settings: Settings) -> int:
    if not args.yes:
        print("Refusing to clear visitor logs without --yes.", file=sys.stderr)
        return EXIT_USAGE
    store = _open_store(settings, _event_logger(settings))
    removed = len(store)
    store.clear()
    print(f"Cleared {removed} visitor log(s).")
    return EXIT_OK


def cmd_consent(args: argparse.Namespace, settings: Settings) -> int:
    event_logger = _event_logger(settings)
    gate = _open_gate(settings, event_logger, apply_skip=False)
    if args.action == "accept":
        gate.decide(ConsentState.ACCEPTED)
    elif args.action == "decline":
        gate.decide(ConsentState.DECLINED)
    elif args.action == "reset":
        gate.reset()
    decided = f" (decided {gate.decided_at})" if gate.decided_at else ""
    print(f"Consent: {gate.state.value}{decided}")
    return EXIT_OK


COMMANDS: dict[str, Callable[[argparse.Namespace, Settings], int]] = {
    "collect": cmd_collect,
    "list": cmd_list,
    "export": cmd_export,
    "clear": cmd_clear,
    "consent": cmd_consent,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.log_json, verbose=args.verbose)
    try:
        if args.env:
            load_env_file(Path(args.env))
        settings = load_settings(args.config)
        if args.state_dir:
            settings = replace(settings, state_dir=Path(args.state_dir))
        return COMMANDS[args.command](args, settings)
    except (ConfigError, ConsentError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except Exception as exc:  # noqa: BLE001
        LOGGER.debug("command %s failed", args.command, exc_info=True)
        print(f"Execution failed: {exc}", file=sys.stderr)
        return EXIT_FAILURE


__all__ = ["COMMANDS", "NO_LOGS_MESSAGE", "main"]
