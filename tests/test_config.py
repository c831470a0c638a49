from __future__ import annotations

from pathlib import Path
import textwrap

import pytest

from visitor_log.config import EndpointConfig, Settings, load_settings
from visitor_log.errors import ConfigError


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "visitor-log.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


def test_defaults_without_file() -> None:
    settings = load_settings(None)

    assert settings == Settings()
    assert settings.capacity == 1000
    assert settings.overall_deadline_s == 10.0
    assert settings.sink_endpoint_env == "VISITOR_LOG_SINK_URL"
    assert [endpoint.name for endpoint in settings.geolocation_endpoints] == ["ip-api", "ipapi.co"]
    assert settings.consent_key == "visitor_cookie_consent"
    assert settings.logs_key == "visitor_logs"


def test_yaml_overrides(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
        state_dir: state
        capacity: 3
        overall_deadline_s: 2.5
        skip_consent: true
        export_prefix: site_logs
        metrics_path: events/metrics.jsonl
        ip_resolvers:
          - name: ipify
            url: https://api.ipify.org?format=json
            format: ip-field
        """,
    )

    settings = load_settings(path)

    assert settings.state_dir == tmp_path / "state"
    assert settings.metrics_path == tmp_path / "events" / "metrics.jsonl"
    assert settings.capacity == 3
    assert settings.overall_deadline_s == 2.5
    assert settings.skip_consent is True
    assert settings.export_prefix == "site_logs"
    assert settings.ip_resolvers == (
        EndpointConfig("ipify", "https://api.ipify.org?format=json", "ip-field"),
    )


def test_empty_file_uses_defaults(tmp_path: Path) -> None:
    settings = load_settings(_write(tmp_path, ""))

    assert settings.capacity == Settings().capacity
    assert settings.state_dir == tmp_path / ".visitor-log"


@pytest.mark.parametrize(
    ("body", "fragment"),
    [
        ("capacity: 0\n", "capacity"),
        ("overall_deadline_s: -1\n", "overall_deadline_s"),
        ("unknown_option: 1\n", "unknown_option"),
        ("ip_resolvers: []\n", "ip_resolvers"),
        ("geolocation_endpoints:\n  - {name: a, url: u, format: soap}\n", "format"),
        (
            "ip_resolvers:\n  - {name: a, url: u, format: ip-field}\n  - {name: a, url: v, format: raw}\n",
            "duplicate",
        ),
        ("- just\n- a list\n", "mapping"),
        ("capacity: [1\n", "YAML"),
    ],
)
def test_invalid_settings_raise_config_error(tmp_path: Path, body: str, fragment: str) -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_settings(_write(tmp_path, body))

    assert fragment in str(excinfo.value)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "absent.yaml")
