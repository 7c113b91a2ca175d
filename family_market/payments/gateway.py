"""MercadoPago REST client.

Thin async wrapper over the endpoints the backend uses. The webhook body
is never trusted: every notification is followed by a read of the
authoritative record through this client. No call is retried; the
gateway's own webhook retry policy is the only redelivery mechanism.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from family_market.exceptions import ConfigurationError, GatewayError, GatewayNotFoundError
from family_market.payments.models import PaymentRecord, PreapprovalRecord

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 30.0


class MercadoPagoGateway:
    """Async MercadoPago API client sharing one connection pool."""

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.mercadopago.com",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._access_token = access_token
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=_TIMEOUT_SECONDS)

    @property
    def configured(self) -> bool:
        return bool(self._access_token)

    @property
    def is_test_mode(self) -> bool:
        """Sandbox credentials are prefixed with ``TEST-``."""
        return self._access_token.startswith("TEST-")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict[str, Any]:
        if not self._access_token:
            raise ConfigurationError("MERCADOPAGO_ACCESS_TOKEN is not configured")

        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                headers={
                    "Authorization": f"Bearer {self._access_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"MercadoPago request failed: {type(e).__name__}") from e

        if response.status_code == 404:
            raise GatewayNotFoundError(
                f"MercadoPago resource not found: {path}",
                status_code=404,
                body=_safe_json(response),
            )
        if response.is_error:
            body = _safe_json(response)
            message = body.get("message") if isinstance(body, dict) else None
            raise GatewayError(
                message or f"MercadoPago answered HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return response.json()

    async def get_payment(self, payment_id: str | int) -> PaymentRecord:
        data = await self._request("GET", f"/v1/payments/{payment_id}")
        return PaymentRecord.model_validate(data)

    async def get_preapproval(self, preapproval_id: str) -> PreapprovalRecord:
        data = await self._request("GET", f"/preapproval/{preapproval_id}")
        return PreapprovalRecord.model_validate(data)

    async def create_preference(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/checkout/preferences", json=body)

    async def create_preapproval(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/preapproval", json=body)


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
