"""Checkout flows: featuring preferences and store subscriptions.

Builds the MercadoPago request bodies. The ``external_reference`` and
``metadata`` written here are what the webhook later reads back to find
the item or user a payment belongs to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from family_market.config import Settings
from family_market.exceptions import GatewayError
from family_market.payments.models import ItemType, PreferenceRequest, SubscriptionRequest
from family_market.payments.references import SUBSCRIPTION_PREFIX

logger = logging.getLogger(__name__)

_DASHBOARD_PATHS = {
    ItemType.EMPLOYMENT: "/dashboard/tienda/empleos",
    ItemType.SERVICE: "/dashboard/tienda/servicios",
    ItemType.PRODUCT: "/dashboard/tienda/productos",
}

_DESCRIPTIONS = {
    ItemType.EMPLOYMENT: "Destacar publicación de empleo por {days} días en Family Market",
    ItemType.SERVICE: "Destacar servicio por {days} días en Family Market",
    ItemType.PRODUCT: "Destacar producto por {days} días en Family Market",
}


class CheckoutValidationError(ValueError):
    """The request body is missing required fields."""


@dataclass(frozen=True)
class PreferenceItem:
    item_type: ItemType
    item_id: str | None
    item_name: str | None


def resolve_preference_item(req: PreferenceRequest) -> PreferenceItem:
    """Work out which kind of item the dashboard wants to feature."""
    if req.type == ItemType.EMPLOYMENT.value or req.employmentId:
        return PreferenceItem(
            ItemType.EMPLOYMENT,
            req.employmentId,
            req.employmentTitle or req.employmentName or "Empleo",
        )
    if req.type == ItemType.SERVICE.value or req.serviceId:
        return PreferenceItem(ItemType.SERVICE, req.serviceId, req.serviceName)
    return PreferenceItem(ItemType.PRODUCT, req.productId, req.productName)


def _parse_amount(value: float | str | None) -> float | None:
    try:
        amount = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return amount if amount > 0 else None


def build_preference(req: PreferenceRequest, settings: Settings) -> dict[str, Any]:
    """MercadoPago checkout preference body for a featuring purchase.

    Raises:
        CheckoutValidationError: if the item id, user, name or amount is missing
    """
    item = resolve_preference_item(req)
    amount = _parse_amount(req.amount)
    kind = item.item_type.value
    if not item.item_id or not req.userId or not item.item_name or amount is None:
        raise CheckoutValidationError(
            f"Required fields: {kind}Id, userId, {kind}Name/Title, amount"
        )

    base_url = settings.base_url
    dashboard_path = _DASHBOARD_PATHS[item.item_type]
    return {
        "items": [
            {
                "id": item.item_id,
                "title": f"Destacar: {item.item_name}",
                "description": _DESCRIPTIONS[item.item_type].format(days=settings.featured_days),
                "quantity": 1,
                "unit_price": amount,
                "currency_id": settings.currency_id,
            }
        ],
        "back_urls": {
            "success": f"{base_url}/payment/success?{kind}_id={item.item_id}",
            "failure": f"{base_url}{dashboard_path}?payment=failed",
            "pending": f"{base_url}{dashboard_path}?payment=pending",
        },
        "auto_return": "approved",
        "notification_url": f"{base_url}/api/mercadopago/webhook",
        "external_reference": f"{kind}_{item.item_id}_{req.userId}",
        "payer": {"name": req.userName or "Usuario Family Market"},
        "metadata": {
            "item_id": item.item_id,
            "user_id": req.userId,
            "type": f"featured_{kind}",
            "amount": str(req.amount),
            "item_type": kind,
        },
    }


def build_subscription(req: SubscriptionRequest, settings: Settings) -> dict[str, Any]:
    """MercadoPago preapproval body for the monthly store subscription."""
    if not req.userId or not req.userEmail:
        raise CheckoutValidationError("userId and userEmail are required")
    return {
        "reason": "Suscripción Tienda Online - Family Market",
        "auto_recurring": {
            "frequency": 1,
            "frequency_type": "months",
            "transaction_amount": settings.subscription_amount,
            "currency_id": settings.currency_id,
        },
        "back_url": f"{settings.base_url}/payment/subscription/success",
        "payer_email": req.userEmail,
        "external_reference": f"{SUBSCRIPTION_PREFIX}{req.userId}",
        "status": "pending",
    }


def subscription_error_response(error: GatewayError) -> dict[str, Any]:
    """Explain a failed preapproval creation to the dashboard."""
    message = str(error).lower()
    status = error.status_code
    if status == 403 or "forbidden" in message:
        text = "Subscriptions are not enabled on this MercadoPago account"
        hint = "Enable them in MercadoPago → Your business → Settings → Subscriptions"
    elif status == 401 or "unauthorized" in message:
        text = "Invalid access token"
        hint = "Check that MERCADOPAGO_ACCESS_TOKEN is correct"
    elif status == 404 or "not found" in message:
        text = "Subscriptions endpoint not available"
        hint = "MercadoPago subscriptions may not be supported in your country"
    else:
        text = "Error creating subscription"
        hint = ""
    return {
        "error": text,
        "details": str(error),
        "hint": hint,
        "status": status,
        "needsActivation": status == 403,
    }
