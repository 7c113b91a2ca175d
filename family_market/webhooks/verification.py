"""MercadoPago webhook signature verification: constant-time HMAC.

MercadoPago sends ``x-signature: ts=<unix ts>,v1=<hex hmac>`` together
with ``x-request-id``. The signed manifest is::

    id:<data.id>;request-id:<x-request-id>;ts:<ts>;

with any part whose value is missing left out.

Contract:
- Verification runs only when MERCADOPAGO_WEBHOOK_SECRET is set
- All comparisons use hmac.compare_digest()
- ts must be within 300s of now (replay protection); MercadoPago sends
  milliseconds, plain seconds are accepted too
- A failed check never turns into a non-200 answer (see handlers)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time

logger = logging.getLogger(__name__)

# Signature timestamp tolerance (seconds)
_TIMESTAMP_TOLERANCE = 300

# Timestamps above this are milliseconds
_MILLISECONDS_THRESHOLD = 10**11


def parse_signature_header(header: str | None) -> dict[str, str]:
    """Split ``ts=...,v1=...`` into a dict (later duplicates win)."""
    parts: dict[str, str] = {}
    if not header:
        return parts
    for item in header.split(","):
        kv = item.strip().split("=", 1)
        if len(kv) == 2:
            parts[kv[0].strip()] = kv[1].strip()
    return parts


def build_manifest(data_id: str | None, request_id: str | None, ts: str | None) -> str:
    """Signed string for a notification."""
    manifest = ""
    if data_id:
        # Alphanumeric ids are signed lowercased
        manifest += f"id:{data_id.lower() if data_id.isalnum() else data_id};"
    if request_id:
        manifest += f"request-id:{request_id};"
    if ts:
        manifest += f"ts:{ts};"
    return manifest


def sign(secret: str, manifest: str) -> str:
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_mercadopago(
    secret: str,
    signature_header: str | None,
    request_id: str | None,
    data_id: str | None,
) -> bool:
    """Verify a MercadoPago ``x-signature`` header.

    Args:
        secret: Webhook secret from the MercadoPago dashboard
        signature_header: Value of the x-signature header
        request_id: Value of the x-request-id header
        data_id: Notified resource id (``data.id``)

    Returns:
        True if the signature matches and ts is within tolerance
    """
    if not secret:
        logger.warning("MERCADOPAGO_WEBHOOK_SECRET not set: cannot verify webhook")
        return False
    parts = parse_signature_header(signature_header)
    ts = parts.get("ts")
    v1 = parts.get("v1")
    if not ts or not v1:
        return False

    try:
        timestamp = int(ts)
    except ValueError:
        return False
    if timestamp > _MILLISECONDS_THRESHOLD:
        timestamp //= 1000
    if abs(time.time() - timestamp) > _TIMESTAMP_TOLERANCE:
        logger.warning("MercadoPago webhook timestamp too old/future: %s", ts)
        return False

    expected = sign(secret, build_manifest(data_id, request_id, ts))
    return hmac.compare_digest(expected, v1)
