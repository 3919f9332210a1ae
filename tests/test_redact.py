from __future__ import annotations

from pollsat._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "publicKey": "8qbHbw2BbbTHBW1sbeqakYXVKRQM8Ne7pLK7m6CVfeR",
        "secretKey": "4wBqpZM9xaSheZzJSMawUHDgZ7miWfSsxmfVF5jJpYP",
        "accessToken": "tok",
        "nested": {"transaction": "AQID", "slot": 12},
    }

    redacted = redact_for_log(payload)
    assert redacted["publicKey"] == payload["publicKey"]
    assert redacted["secretKey"] == "<redacted>"
    assert redacted["accessToken"] == "<redacted>"
    assert redacted["nested"]["transaction"] == "<redacted>"
    assert redacted["nested"]["slot"] == 12


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_summarises_bytes_inside_lists() -> None:
    redacted = redact_for_log([b"\x00" * 64, "memo"])
    assert redacted == ["<bytes:64b>", "memo"]
