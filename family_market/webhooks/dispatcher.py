"""Webhook event dispatcher. Routes MercadoPago notifications to projections.

Each notification names a gateway resource; the resource is re-read from
the gateway and the authoritative record decides what gets written.

Contract:
- ``process`` never raises; every outcome is an acknowledgement dict
- Unknown notification types are acknowledged without writes
- A 404 on the gateway read is a test notification, not an error
- Exception text is logged, never returned to the caller
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from family_market.exceptions import GatewayError, GatewayNotFoundError
from family_market.payments.gateway import MercadoPagoGateway
from family_market.payments.models import PaymentRecord, PaymentStatus
from family_market.payments.projector import StateProjector, is_payment_successful
from family_market.payments.references import (
    FeaturingTarget,
    is_subscription_reference,
    resolve_featuring_target,
    subscription_user_id,
)
from family_market.webhooks.idempotency import WebhookLedger

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    SUBSCRIPTION = "subscription"
    PAYMENT = "payment"
    IGNORED = "ignored"


_SUBSCRIPTION_TYPES = {"subscription_preapproval", "preapproval"}
_PAYMENT_TYPES = {"payment"}

# Preapproval action -> projection
_ACTIVATE_ACTIONS = {"created", "approved", "authorized"}
_PAUSE_ACTIONS = {"paused"}
_CANCEL_ACTIONS = {"cancelled"}


@dataclass
class Notification:
    """Normalized webhook notification."""

    kind: NotificationKind
    type: str
    resource_id: str
    action: str | None = None


def _normalize_action(action: Any) -> str | None:
    """``payment.created`` / ``updated`` style actions keep their last segment."""
    if not action:
        return None
    return str(action).rsplit(".", 1)[-1].strip().lower() or None


def parse_notification(
    body: Mapping[str, Any] | None,
    query: Mapping[str, str] | None = None,
) -> Notification:
    """Parse a webhook body (or legacy IPN query string) into a Notification."""
    body = body or {}
    query = query or {}

    event_type = body.get("type") or query.get("type") or query.get("topic") or ""
    event_type = str(event_type).strip()

    data = body.get("data")
    resource_id = data.get("id") if isinstance(data, Mapping) else None
    resource_id = resource_id or query.get("data.id") or query.get("id") or ""

    if event_type in _SUBSCRIPTION_TYPES:
        kind = NotificationKind.SUBSCRIPTION
    elif event_type in _PAYMENT_TYPES:
        kind = NotificationKind.PAYMENT
    else:
        kind = NotificationKind.IGNORED

    return Notification(
        kind=kind,
        type=event_type or "unknown",
        resource_id=str(resource_id),
        action=_normalize_action(body.get("action")),
    )


def _is_not_found(error: Exception) -> bool:
    """Gateway lookup failures that mean the notified id does not exist."""
    if isinstance(error, GatewayNotFoundError):
        return True
    if not isinstance(error, GatewayError):
        return False
    message = str(error).lower()
    return "not found" in message or "404" in message


class WebhookProcessor:
    """Stateless handler for one notification at a time."""

    def __init__(
        self,
        gateway: MercadoPagoGateway,
        projector: StateProjector,
        ledger: WebhookLedger | None = None,
    ) -> None:
        self._gateway = gateway
        self._projector = projector
        self._ledger = ledger

    def _claim(self, kind: str, resource_id: str, state: str) -> bool:
        if self._ledger is None:
            return True
        return self._ledger.claim(kind, resource_id, state)

    def _release(self, kind: str, resource_id: str, state: str) -> None:
        if self._ledger is not None:
            self._ledger.release(kind, resource_id, state)

    async def process(self, notification: Notification) -> dict[str, Any]:
        """Process a notification and return the acknowledgement body."""
        try:
            if notification.kind is NotificationKind.SUBSCRIPTION:
                return await self._process_subscription(notification)
            if notification.kind is NotificationKind.PAYMENT:
                return await self._process_payment(notification)
            logger.info("Ignoring non-payment notification: %s", notification.type)
            return {"received": True}
        except Exception as e:
            if _is_not_found(e):
                logger.info(
                    "Gateway has no %s %s: treated as a test notification",
                    notification.type,
                    notification.resource_id,
                )
                return {"received": True, "note": "Test notification with fake ID"}
            logger.exception(
                "Webhook processing failed for %s/%s",
                notification.type,
                notification.resource_id,
            )
            return {"received": True, "error": "Error processed but acknowledged"}

    # ── Subscriptions ────────────────────────────────────────────────────

    async def _process_subscription(self, notification: Notification) -> dict[str, Any]:
        if not notification.resource_id:
            logger.warning("Subscription notification without data.id")
            return {"received": True, "note": "Missing resource id"}

        preapproval = await self._gateway.get_preapproval(notification.resource_id)
        user_id = subscription_user_id(preapproval.external_reference)
        if not user_id:
            logger.warning(
                "Preapproval %s has no subscription user in external_reference %r",
                preapproval.id,
                preapproval.external_reference,
            )
            return {"received": True, "note": "No user in external_reference"}

        action = notification.action or preapproval.status
        if action in _ACTIVATE_ACTIONS:
            handler = self._projector.activate_subscription
        elif action in _PAUSE_ACTIONS:
            handler = self._projector.pause_subscription
        elif action in _CANCEL_ACTIONS:
            handler = self._projector.cancel_subscription
        else:
            logger.info("Subscription action %r for %s needs no update", action, preapproval.id)
            return {"received": True}

        if not self._claim("preapproval", preapproval.id, action):
            return {"received": True, "note": "Duplicate notification"}
        try:
            await handler(user_id, preapproval)
        except Exception:
            self._release("preapproval", preapproval.id, action)
            raise
        return {"received": True, "action": action, "userId": user_id}

    # ── Payments ─────────────────────────────────────────────────────────

    async def _process_payment(self, notification: Notification) -> dict[str, Any]:
        if not notification.resource_id:
            logger.warning("Payment notification without data.id")
            return {"received": True, "note": "Missing resource id"}

        payment = await self._gateway.get_payment(notification.resource_id)
        logger.info(
            "Payment %s status=%s detail=%s reference=%s",
            payment.id,
            payment.status,
            payment.status_detail,
            payment.external_reference,
        )

        if is_subscription_reference(payment.external_reference):
            return await self._process_subscription_charge(payment)
        return await self._process_featuring(payment)

    async def _process_subscription_charge(self, payment: PaymentRecord) -> dict[str, Any]:
        if payment.status != PaymentStatus.APPROVED.value:
            logger.info("Subscription charge %s is %s, nothing to record", payment.id, payment.status)
            return {"received": True}

        user_id = subscription_user_id(payment.external_reference)
        payment_id = str(payment.id)
        if not self._claim("subscription_payment", payment_id, payment.status):
            return {"received": True, "note": "Duplicate notification"}
        try:
            await self._projector.record_subscription_payment(user_id, payment)
        except Exception:
            self._release("subscription_payment", payment_id, payment.status)
            raise
        return {"received": True, "subscriptionPayment": payment_id}

    async def _process_featuring(self, payment: PaymentRecord) -> dict[str, Any]:
        resolution = resolve_featuring_target(payment)
        if not isinstance(resolution, FeaturingTarget):
            logger.warning(
                "Payment %s has no item to feature (%s): probably a test notification",
                payment.id,
                resolution.reason,
            )
            return {"received": True, "note": "Test notification processed"}

        if not is_payment_successful(payment.status, payment.status_detail):
            logger.info("Payment %s status %s does not feature items", payment.id, payment.status)
            return {"received": True}

        if resolution.user_id is None:
            logger.warning("Payment %s has no user id; featuring anyway", payment.id)

        payment_id = str(payment.id)
        if not self._claim("payment", payment_id, payment.status):
            return {"received": True, "note": "Duplicate notification"}
        try:
            featured_until = await self._projector.feature_item(resolution, payment)
        except Exception:
            self._release("payment", payment_id, payment.status)
            raise
        return {
            "received": True,
            "featured": resolution.item_id,
            "collection": resolution.collection,
            "featuredUntil": featured_until.isoformat(),
        }
