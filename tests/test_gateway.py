"""Tests for the MercadoPago REST client using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from family_market.exceptions import ConfigurationError, GatewayError, GatewayNotFoundError
from family_market.payments.gateway import MercadoPagoGateway


def _gateway(handler, token: str = "APP_USR-123") -> MercadoPagoGateway:
    client = httpx.AsyncClient(base_url="https://api.mp.test", transport=httpx.MockTransport(handler))
    return MercadoPagoGateway(token, client=client)


@pytest.mark.asyncio
async def test_get_payment_sends_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"id": 9, "status": "approved", "payer": {"email": "x@y.z"}, "extra": 1})

    payment = await _gateway(handler).get_payment(9)

    assert seen == {"path": "/v1/payments/9", "auth": "Bearer APP_USR-123"}
    assert payment.status == "approved"
    assert payment.payer_email == "x@y.z"


@pytest.mark.asyncio
async def test_not_found():
    gateway = _gateway(lambda request: httpx.Response(404, json={"message": "not found"}))
    with pytest.raises(GatewayNotFoundError):
        await gateway.get_preapproval("nope")


@pytest.mark.asyncio
async def test_error_uses_gateway_message():
    gateway = _gateway(lambda request: httpx.Response(403, json={"message": "forbidden access"}))
    with pytest.raises(GatewayError) as exc_info:
        await gateway.create_preapproval({"reason": "x"})
    assert str(exc_info.value) == "forbidden access"
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_transport_error_wrapped():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GatewayError):
        await _gateway(handler).get_payment(1)


@pytest.mark.asyncio
async def test_create_preference_posts_body():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/checkout/preferences"
        assert json.loads(request.content) == {"items": []}
        return httpx.Response(201, json={"id": "pref-1"})

    assert await _gateway(handler).create_preference({"items": []}) == {"id": "pref-1"}


@pytest.mark.asyncio
async def test_missing_token():
    gateway = _gateway(lambda request: httpx.Response(200, json={}), token="")
    assert gateway.configured is False
    with pytest.raises(ConfigurationError):
        await gateway.get_payment(1)


def test_test_mode_detection():
    assert MercadoPagoGateway("TEST-abc", client=httpx.AsyncClient()).is_test_mode is True
    assert MercadoPagoGateway("APP_USR-abc", client=httpx.AsyncClient()).is_test_mode is False
