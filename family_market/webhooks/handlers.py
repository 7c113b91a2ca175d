"""Webhook HTTP handlers: FastAPI routes for MercadoPago notifications.

Each delivery:
1. Reads the raw body and the query string (legacy IPN form)
2. Verifies the x-signature header when a webhook secret is configured
3. Parses the notification and hands it to the WebhookProcessor
4. Answers 200 {"received": true, ...}

Contract:
- Every path answers HTTP 200, failures included, so MercadoPago does not
  redeliver because of our own errors
- Never return error details to the webhook caller
- Log all webhook activity for the audit trail
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from family_market.services import get_services
from family_market.webhooks.dispatcher import Notification, NotificationKind, parse_notification
from family_market.webhooks.verification import verify_mercadopago

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/mercadopago/webhook"


def _log_webhook(request: Request, notification: Notification, status: str) -> None:
    """Audit log for webhook activity.

    Counts are keyed by notification kind, a closed set; the caller-supplied
    type string only reaches the log line.
    """
    kind = notification.kind.value
    counts: dict[str, int] = request.app.state.webhook_counts
    counts[kind] = counts.get(kind, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT provider=mercadopago kind=%s type=%s id=%s status=%s count=%d",
        kind,
        notification.type,
        notification.resource_id,
        status,
        counts[kind],
    )


def _ack(content: dict | None = None) -> JSONResponse:
    return JSONResponse(content or {"received": True}, status_code=200)


async def handle_mercadopago_webhook(request: Request) -> JSONResponse:
    """Receive one MercadoPago notification. Always answers 200."""
    start = time.time()
    services = get_services(request)

    body_bytes = await request.body()
    try:
        body = json.loads(body_bytes) if body_bytes else {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        _log_webhook(request, Notification(NotificationKind.IGNORED, "unknown", "unknown"), "invalid_json")
        return _ack()
    if not isinstance(body, dict):
        body = {}

    notification = parse_notification(body, dict(request.query_params))

    secret = services.settings.mercadopago_webhook_secret
    if secret and not verify_mercadopago(
        secret,
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
        request.query_params.get("data.id") or notification.resource_id,
    ):
        _log_webhook(request, notification, "signature_failed")
        return _ack({"received": True, "note": "Signature not verified"})

    result = await services.webhook_processor.process(notification)
    status = "error" if "error" in result else result.get("note", "processed")
    _log_webhook(request, notification, status)

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: %s/%s", elapsed_ms, notification.type, notification.resource_id)
    return _ack(result)


def register_webhook_routes(app: FastAPI) -> None:
    """Register the MercadoPago webhook routes on the FastAPI app."""
    app.state.webhook_counts = {}

    @app.post(WEBHOOK_PATH)
    async def mercadopago_webhook(request: Request):
        """Receive MercadoPago payment and subscription notifications."""
        try:
            return await handle_mercadopago_webhook(request)
        except Exception:
            logger.exception("Unhandled webhook failure")
            return _ack({"received": True, "error": "Error processed but acknowledged"})

    @app.get(WEBHOOK_PATH)
    async def mercadopago_webhook_status(request: Request):
        """Liveness check with per-kind receive counts."""
        return {
            "status": "Webhook endpoint active",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "counts": dict(request.app.state.webhook_counts),
        }

    logger.info("Webhook routes registered: %s", WEBHOOK_PATH)
