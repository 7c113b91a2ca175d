"""Gateway records and request bodies for the MercadoPago integration."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class PaymentStatus(str, Enum):
    """Statuses MercadoPago reports for payments and preapprovals."""

    APPROVED = "approved"
    PENDING = "pending"
    IN_PROCESS = "in_process"
    REJECTED = "rejected"
    AUTHORIZED = "authorized"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class ItemType(str, Enum):
    """Kinds of catalog item that can be featured."""

    PRODUCT = "product"
    SERVICE = "service"
    EMPLOYMENT = "employment"


class Payer(BaseModel):
    email: str | None = None

    model_config = {"extra": "ignore"}


class PaymentRecord(BaseModel):
    """Authoritative payment as returned by ``GET /v1/payments/{id}``."""

    id: int | str
    status: str = ""
    status_detail: str | None = None
    external_reference: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    transaction_amount: float | None = None
    payment_method_id: str | None = None
    payer: Payer | None = None

    model_config = {"extra": "ignore"}

    @field_validator("metadata", mode="before")
    @classmethod
    def null_metadata_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def payer_email(self) -> str | None:
        return self.payer.email if self.payer else None


class AutoRecurring(BaseModel):
    transaction_amount: float | None = None
    currency_id: str | None = None

    model_config = {"extra": "ignore"}


class PreapprovalRecord(BaseModel):
    """Subscription as returned by ``GET /preapproval/{id}``."""

    id: str
    status: str = ""
    external_reference: str | None = None
    payer_email: str | None = None
    auto_recurring: AutoRecurring | None = None

    model_config = {"extra": "ignore"}


class PreferenceRequest(BaseModel):
    """Body of ``POST /api/mercadopago/create-preference``.

    The front end sends a different id/name field per item type, so all of
    them are optional and resolved by ``checkout.resolve_preference_item``.
    """

    productId: str | None = None
    serviceId: str | None = None
    employmentId: str | None = None
    userId: str | None = None
    userName: str | None = None
    productName: str | None = None
    serviceName: str | None = None
    employmentTitle: str | None = None
    employmentName: str | None = None
    amount: float | str | None = None
    type: str | None = None

    model_config = {"extra": "ignore"}


class SubscriptionRequest(BaseModel):
    """Body of ``POST /api/mercadopago/create-subscription``."""

    userId: str | None = None
    userName: str | None = None
    userEmail: str | None = None

    model_config = {"extra": "ignore"}
