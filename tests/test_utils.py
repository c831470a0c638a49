from __future__ import annotations

import base64

import pytest

from visitor_log.utils import decode_config_value, elapsed_ms, ensure_str_list


def test_decode_config_value() -> None:
    encoded = base64.b64encode(b"https://sink.example.test/").decode()

    assert decode_config_value(f"b64:{encoded}") == "https://sink.example.test/"
    assert decode_config_value(" https://plain.example.test ") == "https://plain.example.test"
    with pytest.raises(ValueError):
        decode_config_value("b64:not base64!")


def test_elapsed_ms() -> None:
    assert elapsed_ms(10.0, now=10.25) == 250
    assert elapsed_ms(10.0, now=9.0) == 0


def test_ensure_str_list() -> None:
    assert ensure_str_list(None) == []
    assert ensure_str_list(" en ") == ["en"]
    assert ensure_str_list(["en", "", 3, " ja "]) == ["en", "ja"]
