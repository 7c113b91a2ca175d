"""App factory, settings and service wiring."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from family_market.app import create_app
from family_market.config import Settings
from family_market.exceptions import ConfigurationError
from family_market.firebase import FirebaseClients
from family_market.services import build_services


def test_base_url_strips_trailing_slash():
    assert Settings(_env_file=None, public_url="https://x.test///").base_url == "https://x.test"


def test_defaults():
    s = Settings(_env_file=None)
    assert s.featured_days == 7
    assert s.notification_batch_size == 500
    assert s.webhook_dedup_enabled is False


def test_firebase_requires_project_id():
    with pytest.raises(ConfigurationError):
        FirebaseClients(Settings(_env_file=None, firebase_project_id="")).app


def test_build_services_is_lazy():
    """Building services must not touch Firebase, Redis or OpenAI."""
    services = build_services(Settings(_env_file=None, openai_api_key="", firebase_project_id=""))
    assert services.gateway.configured is False
    assert services.projector is not None


def test_routes_registered(app):
    paths = {route.path for route in app.routes}
    assert {
        "/api/mercadopago/webhook",
        "/api/mercadopago/create-preference",
        "/api/mercadopago/create-subscription",
        "/api/send-notification",
        "/api/search",
        "/api/smart-search",
    } <= paths


def test_lifespan_closes_gateway(settings, services, gateway):
    with TestClient(create_app(settings=settings, services=services)):
        pass
    assert gateway.closed is True


def test_cors_preflight(client):
    resp = client.options(
        "/api/search",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
