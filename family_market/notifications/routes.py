"""Push notification API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from family_market.notifications.dispatcher import NotificationPayload
from family_market.services import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["notifications"])


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


@router.post("/send-notification")
async def send_notification(request: Request):
    """Send one notification to every token in the body."""
    try:
        body = await request.json()
    except ValueError:
        return _bad_request("Invalid JSON body")
    if not isinstance(body, dict):
        return _bad_request("Invalid JSON body")

    tokens = body.get("tokens")
    if not isinstance(tokens, list) or not tokens or not all(isinstance(t, str) and t for t in tokens):
        return _bad_request("A non-empty array of device tokens is required")

    raw_payload = body.get("payload")
    if not isinstance(raw_payload, dict) or not raw_payload.get("notification"):
        return _bad_request("A payload with a notification is required")
    try:
        payload = NotificationPayload.model_validate(raw_payload)
    except ValidationError as e:
        return _bad_request(f"Invalid notification payload: {e.errors()[0]['msg']}")

    services = get_services(request)
    dispatcher = services.notifications
    try:
        report = await dispatcher.send(tokens, payload)
    except Exception as e:
        logger.exception("Notification dispatch failed")
        return JSONResponse(
            {"error": "Internal server error", "details": str(e)},
            status_code=500,
        )
    return report.to_response(body.get("notificationId"))
