"""設定ファイルの読み込みユーティリティ。"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt, ValidationError
import yaml

from .consent import CONSENT_KEY
from .errors import ConfigError
from .exporter import DEFAULT_EXPORT_PREFIX
from .orchestrator import DEFAULT_OVERALL_DEADLINE_S
from .providers.http import DEFAULT_GEOLOCATION_ENDPOINTS, DEFAULT_IP_RESOLVERS, PARSERS
from .sink import DEFAULT_SINK_ENV
from .store import DEFAULT_CAPACITY, LOGS_KEY

__all__ = ["EndpointConfig", "Settings", "SettingsModel", "load_settings", "settings_from_mapping"]

ResponseFormat = Literal["ip-api", "ipapi.co", "ip-field", "raw"]


class EndpointModel(BaseModel):
    """HTTP ソース設定のスキーマ。"""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    format: ResponseFormat = "raw"


def _default_endpoints(rows: tuple[tuple[str, str, str], ...]) -> list[EndpointModel]:
    return [EndpointModel(name=name, url=url, format=fmt) for name, url, fmt in rows]  # type: ignore[arg-type]


class SettingsModel(BaseModel):
    """visitor-log 設定全体のスキーマ。"""

    model_config = ConfigDict(extra="forbid")

    state_dir: str = ".visitor-log"
    capacity: PositiveInt = DEFAULT_CAPACITY
    overall_deadline_s: PositiveFloat = DEFAULT_OVERALL_DEADLINE_S
    provider_timeout_s: PositiveFloat = 5.0
    geolocation_timeout_s: PositiveFloat = 5.0
    geolocation_enrich: bool = True
    ip_race_timeout_s: PositiveFloat = 3.0
    gps_timeout_s: PositiveFloat = 10.0
    gps_high_accuracy: bool = True
    skip_consent: bool = False
    sink_endpoint_env: str = Field(default=DEFAULT_SINK_ENV, min_length=1)
    sink_timeout_s: PositiveFloat = 5.0
    export_prefix: str = Field(default=DEFAULT_EXPORT_PREFIX, min_length=1)
    geolocation_endpoints: list[EndpointModel] = Field(
        default_factory=lambda: _default_endpoints(DEFAULT_GEOLOCATION_ENDPOINTS)
    )
    ip_resolvers: list[EndpointModel] = Field(
        default_factory=lambda: _default_endpoints(DEFAULT_IP_RESOLVERS)
    )
    metrics_path: str | None = None


@dataclass(frozen=True, slots=True)
class EndpointConfig:
    name: str
    url: str
    format: str = "raw"


@dataclass(frozen=True)
class Settings:
    state_dir: Path = Path(".visitor-log")
    capacity: int = DEFAULT_CAPACITY
    overall_deadline_s: float = DEFAULT_OVERALL_DEADLINE_S
    provider_timeout_s: float = 5.0
    geolocation_timeout_s: float = 5.0
    geolocation_enrich: bool = True
    ip_race_timeout_s: float = 3.0
    gps_timeout_s: float = 10.0
    gps_high_accuracy: bool = True
    skip_consent: bool = False
    sink_endpoint_env: str = DEFAULT_SINK_ENV
    sink_timeout_s: float = 5.0
    export_prefix: str = DEFAULT_EXPORT_PREFIX
    geolocation_endpoints: tuple[EndpointConfig, ...] = field(
        default_factory=lambda: tuple(EndpointConfig(*row) for row in DEFAULT_GEOLOCATION_ENDPOINTS)
    )
    ip_resolvers: tuple[EndpointConfig, ...] = field(
        default_factory=lambda: tuple(EndpointConfig(*row) for row in DEFAULT_IP_RESOLVERS)
    )
    metrics_path: Path | None = None
    consent_key: str = CONSENT_KEY
    logs_key: str = LOGS_KEY


def _format_validation_error(source: str, exc: ValidationError) -> str:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part is not None)
        message = error.get("msg", "unknown error")
        details.append(f"{location}: {message}" if location else message)
    return f"invalid settings ({source}): {'; '.join(details)}"


def _endpoints(models: list[EndpointModel], label: str) -> tuple[EndpointConfig, ...]:
    if not models:
        raise ConfigError(f"{label} must list at least one endpoint")
    names = [model.name for model in models]
    if len(set(names)) != len(names):
        raise ConfigError(f"{label} contains duplicate names")
    for model in models:
        if model.format not in PARSERS:  # pragma: no cover - guarded by Literal
            raise ConfigError(f"{label}.{model.name}: unsupported format {model.format}")
    return tuple(EndpointConfig(model.name, model.url, model.format) for model in models)


def settings_from_mapping(
    data: Mapping[str, Any],
    *,
    source: str = "<mapping>",
    base_dir: Path | None = None,
) -> Settings:
    """Validate ``data`` and build :class:`Settings`.

    Relative ``state_dir`` / ``metrics_path`` values resolve against ``base_dir``
    when given.
    """

    try:
        model = SettingsModel.model_validate(dict(data))
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(source, exc)) from None

    def _resolve(value: str) -> Path:
        path = Path(value).expanduser()
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        return path

    return Settings(
        state_dir=_resolve(model.state_dir),
        capacity=model.capacity,
        overall_deadline_s=model.overall_deadline_s,
        provider_timeout_s=model.provider_timeout_s,
        geolocation_timeout_s=model.geolocation_timeout_s,
        geolocation_enrich=model.geolocation_enrich,
        ip_race_timeout_s=model.ip_race_timeout_s,
        gps_timeout_s=model.gps_timeout_s,
        gps_high_accuracy=model.gps_high_accuracy,
        skip_consent=model.skip_consent,
        sink_endpoint_env=model.sink_endpoint_env,
        sink_timeout_s=model.sink_timeout_s,
        export_prefix=model.export_prefix,
        geolocation_endpoints=_endpoints(model.geolocation_endpoints, "geolocation_endpoints"),
        ip_resolvers=_endpoints(model.ip_resolvers, "ip_resolvers"),
        metrics_path=None if model.metrics_path is None else _resolve(model.metrics_path),
    )


def load_settings(path: str | Path | None = None) -> Settings:
    """YAML 設定を読み込む。``path`` が ``None`` の場合は既定値を返す。"""

    if path is None:
        return Settings()
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"settings file not found: {config_path}") from None
    except OSError as exc:
        raise ConfigError(f"settings file unreadable: {config_path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"settings file is not valid YAML: {config_path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"settings root must be a mapping: {config_path}")
    return settings_from_mapping(data, source=str(config_path), base_dir=config_path.parent)
