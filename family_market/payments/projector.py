"""Project authoritative gateway records onto application documents.

Writes are unconditional: the featured-flag update does not check for a
racing write and audit records are appended without an idempotency key.
Processing the same approved payment twice rewrites the same featured
fields and leaves two audit records.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from google.cloud.firestore import SERVER_TIMESTAMP

from family_market.payments.models import PaymentRecord, PaymentStatus, PreapprovalRecord
from family_market.payments.references import FeaturingTarget
from family_market.store import FEATURED_PAYMENTS, SUBSCRIPTION_PAYMENTS, USERS, DocumentStore

logger = logging.getLogger(__name__)

PENDING_WAITING_PAYMENT = "pending_waiting_payment"
PLAN_TYPE = "tienda_online"


def is_payment_successful(status: str, status_detail: str | None = None) -> bool:
    """Whether a featuring payment should flag its item.

    Accepts settled payments and, optimistically, ones still in process
    or waiting for an offline payment to be made.
    """
    if status in (PaymentStatus.APPROVED.value, PaymentStatus.IN_PROCESS.value):
        return True
    return status == PaymentStatus.PENDING.value and status_detail == PENDING_WAITING_PAYMENT


def _as_utc(value: Any) -> datetime | None:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_featured(item: dict[str, Any], now: datetime | None = None) -> bool:
    """Read-time check of a catalog item's featured window."""
    if not item.get("featured"):
        return False
    until = _as_utc(item.get("featuredUntil"))
    if until is None:
        return False
    return until > (now or datetime.now(timezone.utc))


class StateProjector:
    """Applies payment and subscription outcomes to the document store."""

    def __init__(
        self,
        store: DocumentStore,
        featured_days: int = 7,
        subscription_days: int = 30,
        currency_id: str = "ARS",
    ) -> None:
        self._store = store
        self._featured_window = timedelta(days=featured_days)
        self._subscription_window = timedelta(days=subscription_days)
        self._currency_id = currency_id

    # ── Featuring ────────────────────────────────────────────────────────

    async def feature_item(
        self,
        target: FeaturingTarget,
        payment: PaymentRecord,
        now: datetime | None = None,
    ) -> datetime:
        """Flag the target item as featured and append the audit record.

        Returns the computed ``featuredUntil``.
        """
        now = now or datetime.now(timezone.utc)
        featured_until = now + self._featured_window

        await self._store.update(
            target.collection,
            target.item_id,
            {
                "featured": True,
                "featuredUntil": featured_until,
                "featuredPaymentId": payment.id,
                "featuredAmount": target.amount,
                "fechaDestacado": SERVER_TIMESTAMP,
            },
        )
        await self._store.add(
            FEATURED_PAYMENTS,
            {
                "itemId": target.item_id,
                "itemType": target.item_type.value,
                "collection": target.collection,
                "userId": target.user_id,
                "paymentId": payment.id,
                "amount": target.amount,
                "status": payment.status,
                "statusDetail": payment.status_detail,
                "featuredUntil": featured_until,
                "externalReference": payment.external_reference,
                "paymentMethod": payment.payment_method_id or "unknown",
                "payerEmail": payment.payer_email,
                "fechaCreacion": SERVER_TIMESTAMP,
            },
        )
        logger.info(
            "Featured %s/%s until %s (payment %s, %s)",
            target.collection,
            target.item_id,
            featured_until.isoformat(),
            payment.id,
            payment.status,
        )
        return featured_until

    # ── Subscriptions ────────────────────────────────────────────────────

    async def record_subscription_payment(self, user_id: str | None, payment: PaymentRecord) -> str:
        """Append the audit record of one recurring subscription charge."""
        doc_id = await self._store.add(
            SUBSCRIPTION_PAYMENTS,
            {
                "userId": user_id,
                "paymentId": payment.id,
                "amount": payment.transaction_amount or 0.0,
                "status": payment.status,
                "externalReference": payment.external_reference,
                "paymentMethod": payment.payment_method_id or "unknown",
                "payerEmail": payment.payer_email,
                "fechaCreacion": SERVER_TIMESTAMP,
            },
        )
        logger.info("Recorded subscription payment %s for user %s", payment.id, user_id)
        return doc_id

    async def activate_subscription(
        self,
        user_id: str,
        preapproval: PreapprovalRecord,
        now: datetime | None = None,
    ) -> None:
        now = now or datetime.now(timezone.utc)
        recurring = preapproval.auto_recurring
        await self._store.update(
            USERS,
            user_id,
            {
                "accountStatus": "approved",
                "subscription": {
                    "isActive": True,
                    "status": PaymentStatus.AUTHORIZED.value,
                    "planType": PLAN_TYPE,
                    "preapprovalId": preapproval.id,
                    "startDate": now,
                    "expiresAt": now + self._subscription_window,
                    "amount": recurring.transaction_amount if recurring else None,
                    "currency": (recurring.currency_id if recurring else None) or self._currency_id,
                    "autoRenewal": True,
                    "activatedAt": now,
                    "activationMethod": "webhook",
                },
                "updatedAt": now,
            },
        )
        logger.info("Subscription %s activated for user %s", preapproval.id, user_id)

    async def pause_subscription(
        self,
        user_id: str,
        preapproval: PreapprovalRecord,
        now: datetime | None = None,
    ) -> None:
        now = now or datetime.now(timezone.utc)
        await self._store.update(
            USERS,
            user_id,
            {
                "subscription.isActive": False,
                "subscription.status": PaymentStatus.PAUSED.value,
                "subscription.pausedAt": now,
                "updatedAt": now,
            },
        )
        logger.info("Subscription %s paused for user %s", preapproval.id, user_id)

    async def cancel_subscription(
        self,
        user_id: str,
        preapproval: PreapprovalRecord,
        now: datetime | None = None,
    ) -> None:
        now = now or datetime.now(timezone.utc)
        await self._store.update(
            USERS,
            user_id,
            {
                "accountStatus": "suspended",
                "subscription.isActive": False,
                "subscription.status": PaymentStatus.CANCELLED.value,
                "subscription.cancelledAt": now,
                "updatedAt": now,
            },
        )
        logger.info("Subscription %s cancelled for user %s", preapproval.id, user_id)
