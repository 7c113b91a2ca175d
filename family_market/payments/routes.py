"""MercadoPago checkout API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from family_market.exceptions import ConfigurationError, GatewayError
from family_market.payments.checkout import (
    CheckoutValidationError,
    build_preference,
    build_subscription,
    subscription_error_response,
)
from family_market.payments.models import PreferenceRequest, SubscriptionRequest
from family_market.services import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mercadopago", tags=["payments"])

_NOT_CONFIGURED = {"error": "MercadoPago is not configured"}


async def _read_body(request: Request, model):
    try:
        raw = await request.json()
    except ValueError:
        raise CheckoutValidationError("Invalid JSON body")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise CheckoutValidationError(f"Invalid request body: {e.errors()[0]['msg']}")


@router.post("/create-preference")
async def create_preference(request: Request):
    """Create a checkout preference to feature a catalog item."""
    services = get_services(request)
    try:
        req = await _read_body(request, PreferenceRequest)
        body = build_preference(req, services.settings)
    except CheckoutValidationError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    if not services.gateway.configured:
        logger.error("MERCADOPAGO_ACCESS_TOKEN not configured")
        return JSONResponse(_NOT_CONFIGURED, status_code=500)

    try:
        result = await services.gateway.create_preference(body)
    except (GatewayError, ConfigurationError) as e:
        logger.exception("Error creating MercadoPago preference")
        return JSONResponse(
            {"error": "Error creating payment preference", "details": str(e)},
            status_code=500,
        )

    logger.info("Preference %s created for %s", result.get("id"), body["external_reference"])
    return {
        "preferenceId": result.get("id"),
        "init_point": result.get("init_point"),
        "sandbox_init_point": result.get("sandbox_init_point"),
    }


@router.post("/create-subscription")
async def create_subscription(request: Request):
    """Create the monthly store subscription (preapproval) for a user."""
    services = get_services(request)
    try:
        req = await _read_body(request, SubscriptionRequest)
        body = build_subscription(req, services.settings)
    except CheckoutValidationError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    gateway = services.gateway
    if not gateway.configured:
        logger.error("MERCADOPAGO_ACCESS_TOKEN not configured")
        return JSONResponse(_NOT_CONFIGURED, status_code=500)
    logger.info("Creating subscription for user %s (test credentials: %s)", req.userId, gateway.is_test_mode)

    try:
        result = await gateway.create_preapproval(body)
    except GatewayError as e:
        logger.error(
            "Error creating subscription: %s (status=%s, body=%s)",
            e,
            e.status_code,
            e.body,
        )
        return JSONResponse(subscription_error_response(e), status_code=500)

    logger.info("Subscription %s created for user %s", result.get("id"), req.userId)
    return {
        "subscriptionId": result.get("id"),
        "init_point": result.get("init_point"),
        "sandbox_init_point": result.get("sandbox_init_point"),
        "status": result.get("status"),
    }
