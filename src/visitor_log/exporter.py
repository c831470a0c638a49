"""Human- and machine-readable exports of the visitor log."""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timezone
import json
import logging
from pathlib import Path
from typing import Any

from .ip_reconciliation import IPKind
from .record import SECTIONS, CompositeRecord, format_local_time

LOGGER = logging.getLogger(__name__)

RULE_WIDTH = 80
NOT_AVAILABLE = "N/A"
DEFAULT_EXPORT_PREFIX = "visitor_logs"
EXPORT_FORMATS = ("text", "json")
_EXTENSIONS = {"text": "txt", "json": "json"}

_SECTION_TITLES: dict[str, str] = {
    "page": "PAGE",
    "referrer": "REFERRER",
    "location": "LOCATION INFORMATION",
    "network": "NETWORK ADDRESSES",
    "device": "DEVICE INFORMATION",
    "browser": "BROWSER INFORMATION",
    "os": "OPERATING SYSTEM",
    "screen": "SCREEN",
    "gpu": "GPU",
    "battery": "BATTERY",
    "connection": "CONNECTION INFORMATION",
    "storage": "STORAGE",
    "media": "MEDIA DEVICES",
    "timezone": "TIMEZONE",
    "language": "LANGUAGE",
    "capabilities": "CAPABILITIES",
    "fingerprints": "FINGERPRINTS",
    "detection": "DETECTION",
    "gps": "GPS",
    "session": "SESSION",
}

# Fields always listed (N/A when missing) ahead of any extra keys.
_SECTION_FIELDS: dict[str, tuple[str, ...]] = {
    "page": ("url", "title"),
    "location": (
        "ip",
        "city",
        "region",
        "regionCode",
        "country",
        "countryCode",
        "zipCode",
        "latitude",
        "longitude",
        "timezone",
        "isp",
        "organization",
        "asn",
    ),
    "browser": ("name", "version", "userAgent"),
    "os": ("name", "version"),
    "device": ("type", "brand", "model"),
    "screen": ("width", "height", "viewportWidth", "viewportHeight", "colorDepth", "pixelRatio"),
    "connection": ("effectiveType", "downlink", "rtt"),
    "language": ("language", "languages"),
    "gps": ("status", "latitude", "longitude", "accuracy_m"),
    "session": ("clicks", "keystrokes", "max_scroll_depth", "duration_ms"),
}


def _format_scalar(value: Any) -> str:
    if value is None or value == "":
        return NOT_AVAILABLE
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    if isinstance(value, list | tuple):
        if not value:
            return NOT_AVAILABLE
        return ", ".join(_format_scalar(item) for item in value)
    return str(value)


def _mapping_lines(section: str, value: Mapping[str, Any]) -> list[str]:
    fields = _SECTION_FIELDS.get(section, ())
    lines = [f"  {field}: {_format_scalar(value.get(field))}" for field in fields]
    lines.extend(
        f"  {key}: {_format_scalar(item)}" for key, item in value.items() if key not in fields
    )
    return lines


def _network_lines(value: Mapping[str, Any]) -> list[str]:
    addresses = [entry for entry in value.get("addresses", ()) if isinstance(entry, Mapping)]
    lines: list[str] = []
    for kind in IPKind:
        matching = [entry for entry in addresses if entry.get("kind") == kind.value]
        if not matching:
            lines.append(f"  {kind.value}: {NOT_AVAILABLE}")
            continue
        rendered = ", ".join(f"{entry.get('address')} ({entry.get('source')})" for entry in matching)
        lines.append(f"  {kind.value}: {rendered}")
    lines.append(f"  Total: {value.get('total', len(addresses))}")
    return lines


def _section_lines(section: str, value: Any) -> list[str]:
    if value is None:
        fields = _SECTION_FIELDS.get(section)
        if fields:
            return [f"  {field}: {NOT_AVAILABLE}" for field in fields]
        return [f"  {NOT_AVAILABLE}"]
    if section == "network" and isinstance(value, Mapping):
        return _network_lines(value)
    if isinstance(value, Mapping):
        return _mapping_lines(section, value)
    return [f"  {_format_scalar(value)}"]


def _record_block(index: int, record: CompositeRecord) -> list[str]:
    lines = [
        "-" * RULE_WIDTH,
        f"VISITOR #{index}",
        "-" * RULE_WIDTH,
        f"Record ID: {record.id}",
        f"Timestamp: {record.timestamp}",
        f"Local Time: {_format_scalar(record.local_time)}",
        f"Consent Given: {_format_scalar(record.consent_given)}",
        f"Consent Time: {_format_scalar(record.consent_time)}",
        f"Returning Visitor: {_format_scalar(record.returning_visitor)}",
    ]
    extra = [name for name in record.sections if name not in SECTIONS]
    for section in (*SECTIONS, *extra):
        title = _SECTION_TITLES.get(section, section.upper())
        lines.append("")
        lines.append(f"{title}:")
        value = None if record.is_absent(section) else record.section(section)
        lines.extend(_section_lines(section, value))
    lines.append("")
    return lines


def to_text(
    records: Sequence[CompositeRecord],
    *,
    generated_at: datetime | None = None,
) -> str | None:
    """Render ``records`` for people; ``None`` signals there is nothing to export."""

    if not records:
        return None
    generated = format_local_time(generated_at or datetime.now().astimezone())
    lines = [
        "=" * RULE_WIDTH,
        "                    VISITOR LOGS EXPORT",
        f"                    Generated: {generated}",
        "=" * RULE_WIDTH,
        "",
    ]
    for index, record in enumerate(records, start=1):
        lines.extend(_record_block(index, record))
    lines.extend(
        [
            "=" * RULE_WIDTH,
            f"Total Visitors Logged: {len(records)}",
            "=" * RULE_WIDTH,
        ]
    )
    return "\n".join(lines) + "\n"


def to_json(records: Sequence[CompositeRecord]) -> str | None:
    """Serialize ``records`` losslessly; ``None`` signals there is nothing to export."""

    if not records:
        return None
    return json.dumps([record.to_dict() for record in records], ensure_ascii=False, indent=2)


def from_json(text: str) -> list[CompositeRecord]:
    payload = json.loads(text)
    if not isinstance(payload, list):
        raise ValueError("export payload must be a JSON array")
    return [CompositeRecord.from_dict(entry) for entry in payload]


def export_filename(prefix: str, fmt: str, day: date) -> str:
    try:
        extension = _EXTENSIONS[fmt]
    except KeyError as exc:
        raise ValueError(f"unsupported export format: {fmt}") from exc
    return f"{prefix}_{day.isoformat()}.{extension}"


def write_exports(
    records: Sequence[CompositeRecord],
    directory: str | Path,
    *,
    formats: Iterable[str] = EXPORT_FORMATS,
    prefix: str = DEFAULT_EXPORT_PREFIX,
    now: datetime | None = None,
) -> list[Path]:
    """Write the requested exports; returns an empty list when there is nothing to export."""

    if not records:
        LOGGER.info("no visitor logs to export")
        return []
    moment = now or datetime.now().astimezone()
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for fmt in formats:
        if fmt == "text":
            content = to_text(records, generated_at=moment)
        elif fmt == "json":
            content = to_json(records)
        else:
            raise ValueError(f"unsupported export format: {fmt}")
        if content is None:  # pragma: no cover - guarded above
            continue
        path = target_dir / export_filename(prefix, fmt, moment.astimezone(timezone.utc).date())
        path.write_text(content, encoding="utf-8")
        written.append(path)
    return written


__all__ = [
    "DEFAULT_EXPORT_PREFIX",
    "EXPORT_FORMATS",
    "NOT_AVAILABLE",
    "export_filename",
    "from_json",
    "to_json",
    "to_text",
    "write_exports",
]
