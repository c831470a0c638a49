from __future__ import annotations

import argparse
from collections.abc import Sequence

EXPORT_CHOICES = ("text", "json", "both")
CONSENT_ACTIONS = ("show", "accept", "decline", "reset")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="visitor-log")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--env", help=".env file loaded before reading settings")
    parser.add_argument("--state-dir", dest="state_dir", help="override the persisted state directory")
    parser.add_argument("--log-json", dest="log_json", action="store_true", help="emit logs as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    collect = commands.add_parser("collect", help="run one page load")
    collect.add_argument("--context", required=True, help="page context JSON file ('-' for stdin)")
    collect.add_argument(
        "--consent",
        choices=("accept", "decline"),
        help="answer the consent prompt when no decision is recorded yet",
    )

    commands.add_parser("list", help="print stored records as JSON")

    export = commands.add_parser("export", help="write export files")
    export.add_argument("--format", dest="format", choices=EXPORT_CHOICES, default="both")
    export.add_argument("--out", default=".", help="output directory")

    clear = commands.add_parser("clear", help="remove every stored record")
    clear.add_argument("--yes", action="store_true", help="confirm the deletion")

    consent = commands.add_parser("consent", help="inspect or change the consent decision")
    consent.add_argument("action", choices=CONSENT_ACTIONS)

    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


__all__ = ["CONSENT_ACTIONS", "EXPORT_CHOICES", "parse_args"]
