"""Recover business context from a gateway payment.

A featuring payment carries its target in two places: the ``metadata``
bag set at preference creation, and the ``external_reference`` string
``<type>_<item id>_<user id>``. Metadata wins when present. The result is
either a ``FeaturingTarget`` or an ``Unresolved`` explaining why nothing
could be recovered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from family_market.payments.models import ItemType, PaymentRecord
from family_market.store import JOBS, PRODUCTS, SERVICES

logger = logging.getLogger(__name__)

SUBSCRIPTION_PREFIX = "subscription_"

_COLLECTIONS = {
    ItemType.EMPLOYMENT: JOBS,
    ItemType.SERVICE: SERVICES,
    ItemType.PRODUCT: PRODUCTS,
}


@dataclass(frozen=True)
class FeaturingTarget:
    """Catalog item a payment promotes."""

    item_id: str
    item_type: ItemType
    user_id: str | None
    amount: float
    source: str  # "metadata" or "external_reference"

    @property
    def collection(self) -> str:
        return collection_for(self.item_type)


@dataclass(frozen=True)
class Unresolved:
    """No item id could be recovered from the payment."""

    reason: str


TargetResolution = Union[FeaturingTarget, Unresolved]


def coerce_item_type(value: object) -> ItemType:
    """Map a free-form type string to an ItemType (unknown -> product)."""
    if isinstance(value, ItemType):
        return value
    try:
        return ItemType(str(value).strip().lower())
    except ValueError:
        return ItemType.PRODUCT


def collection_for(item_type: ItemType | str) -> str:
    """Catalog collection holding items of ``item_type``."""
    return _COLLECTIONS[coerce_item_type(item_type)]


def _to_amount(value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def is_subscription_reference(external_reference: str | None) -> bool:
    return bool(external_reference) and external_reference.startswith(SUBSCRIPTION_PREFIX)


def subscription_user_id(external_reference: str | None) -> str | None:
    """User id of a ``subscription_<user id>`` reference, else None."""
    if not is_subscription_reference(external_reference):
        return None
    return external_reference[len(SUBSCRIPTION_PREFIX):] or None


def _from_metadata(payment: PaymentRecord) -> FeaturingTarget | None:
    meta = payment.metadata
    # product_id is the key older preferences were created with
    item_id = meta.get("item_id") or meta.get("product_id")
    if not item_id:
        return None
    amount = meta.get("amount")
    if amount in (None, ""):
        amount = payment.transaction_amount
    user_id = meta.get("user_id")
    return FeaturingTarget(
        item_id=str(item_id),
        item_type=coerce_item_type(meta.get("item_type") or ItemType.PRODUCT.value),
        user_id=str(user_id) if user_id else None,
        amount=_to_amount(amount),
        source="metadata",
    )


def _from_external_reference(payment: PaymentRecord) -> FeaturingTarget | None:
    reference = payment.external_reference or ""
    parts = reference.split("_")
    if len(parts) < 3:
        return None
    try:
        item_type = ItemType(parts[0])
    except ValueError:
        return None
    if not parts[1]:
        return None
    return FeaturingTarget(
        item_id=parts[1],
        item_type=item_type,
        user_id=parts[2] or None,
        amount=_to_amount(payment.transaction_amount),
        source="external_reference",
    )


def resolve_featuring_target(payment: PaymentRecord) -> TargetResolution:
    """Resolve which catalog item a one-time payment features."""
    if payment.metadata:
        target = _from_metadata(payment)
        if target is not None:
            return target
        logger.debug("Payment %s metadata has no item id, trying external_reference", payment.id)

    if payment.external_reference:
        target = _from_external_reference(payment)
        if target is not None:
            return target
        return Unresolved(f"unparseable external_reference {payment.external_reference!r}")

    return Unresolved("no metadata and no external_reference")
