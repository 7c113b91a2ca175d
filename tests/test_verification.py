"""MercadoPago x-signature verification (constant-time HMAC, replay window)."""

from __future__ import annotations

import hashlib
import hmac
import time

from family_market.webhooks.verification import (
    build_manifest,
    parse_signature_header,
    verify_mercadopago,
)

SECRET = "mp-test-secret"


def _now_ms() -> str:
    return str(int(time.time() * 1000))


def _header(data_id: str, request_id: str, ts: str | None = None) -> str:
    ts = ts or _now_ms()
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    v1 = hmac.new(SECRET.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return f"ts={ts},v1={v1}"


def test_valid_signature():
    assert verify_mercadopago(SECRET, _header("123", "req-1"), "req-1", "123") is True


def test_alphanumeric_id_signed_lowercase():
    assert verify_mercadopago(SECRET, _header("abc9", "req-1"), "req-1", "ABC9") is True


def test_tampered_id():
    assert verify_mercadopago(SECRET, _header("123", "req-1"), "req-1", "124") is False


def test_wrong_request_id():
    assert verify_mercadopago(SECRET, _header("123", "req-1"), "req-2", "123") is False


def test_missing_parts():
    assert verify_mercadopago(SECRET, None, "req-1", "123") is False
    assert verify_mercadopago(SECRET, "ts=1", "req-1", "123") is False


def test_missing_secret_rejects():
    assert verify_mercadopago("", _header("123", "req-1"), "req-1", "123") is False


def test_expired_timestamp_rejects():
    """A correctly signed delivery older than 5 minutes is a replay."""
    old_ms = str(int((time.time() - 600) * 1000))
    assert verify_mercadopago(SECRET, _header("123", "req-1", ts=old_ms), "req-1", "123") is False


def test_future_timestamp_rejects():
    future_ms = str(int((time.time() + 600) * 1000))
    assert verify_mercadopago(SECRET, _header("123", "req-1", ts=future_ms), "req-1", "123") is False


def test_seconds_timestamp_accepted():
    ts = str(int(time.time()))
    assert verify_mercadopago(SECRET, _header("123", "req-1", ts=ts), "req-1", "123") is True


def test_non_numeric_timestamp_rejects():
    assert verify_mercadopago(SECRET, _header("123", "req-1", ts="yesterday"), "req-1", "123") is False


def test_manifest_skips_missing_values():
    assert build_manifest("55", None, "9") == "id:55;ts:9;"
    assert build_manifest(None, None, None) == ""


def test_parse_header_tolerates_spaces():
    assert parse_signature_header(" ts=1 , v1=abc,junk") == {"ts": "1", "v1": "abc"}
