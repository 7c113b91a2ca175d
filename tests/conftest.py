"""Shared fixtures for the Family Market test suite.

Every external collaborator is replaced by an in-memory fake:
- FakeStore: dict-backed DocumentStore (dotted-path updates like Firestore)
- FakeGateway: canned MercadoPago payments/preapprovals, records creations
- A MagicMock multicast sender for push notifications
"""

from __future__ import annotations

import itertools
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from family_market.app import create_app
from family_market.config import Settings
from family_market.exceptions import GatewayNotFoundError
from family_market.notifications.dispatcher import NotificationDispatcher
from family_market.payments.models import PaymentRecord, PreapprovalRecord
from family_market.payments.projector import StateProjector
from family_market.search.assistant import MilyAssistant
from family_market.search.intent import SearchIntentAnalyzer
from family_market.services import Services
from family_market.webhooks.dispatcher import WebhookProcessor


class FakeStore:
    """In-memory DocumentStore."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.failing: set[str] = set()
        self._ids = itertools.count(1)

    def seed(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[doc_id] = dict(data)

    def docs(self, collection: str) -> list[dict[str, Any]]:
        return list(self.collections.get(collection, {}).values())

    def _check(self, collection: str) -> None:
        if collection in self.failing:
            raise RuntimeError(f"{collection} unavailable")

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        self._check(collection)
        doc = self.collections.get(collection, {}).get(doc_id)
        return {"id": doc_id, **doc} if doc is not None else None

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._check(collection)
        doc = self.collections.get(collection, {}).get(doc_id)
        if doc is None:
            raise KeyError(f"No document to update: {collection}/{doc_id}")
        for key, value in fields.items():
            *parents, leaf = key.split(".")
            target = doc
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = value

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        self._check(collection)
        doc_id = f"auto-{next(self._ids)}"
        self.seed(collection, doc_id, data)
        return doc_id

    async def where(self, collection: str, field: str, value: Any, limit: int | None = None) -> list[dict[str, Any]]:
        self._check(collection)
        found = [
            {"id": doc_id, **doc}
            for doc_id, doc in self.collections.get(collection, {}).items()
            if doc.get(field) == value
        ]
        return found[:limit] if limit is not None else found

    async def scan(self, collection: str, limit: int) -> list[dict[str, Any]]:
        self._check(collection)
        items = self.collections.get(collection, {}).items()
        return [{"id": doc_id, **doc} for doc_id, doc in items][:limit]


class FakeGateway:
    """Stands in for MercadoPagoGateway."""

    def __init__(self, access_token: str = "TEST-token") -> None:
        self.access_token = access_token
        self.payments: dict[str, dict[str, Any]] = {}
        self.preapprovals: dict[str, dict[str, Any]] = {}
        self.created_preferences: list[dict[str, Any]] = []
        self.created_preapprovals: list[dict[str, Any]] = []
        self.create_error: Exception | None = None
        self.read_error: Exception | None = None
        self.closed = False

    @property
    def configured(self) -> bool:
        return bool(self.access_token)

    @property
    def is_test_mode(self) -> bool:
        return self.access_token.startswith("TEST-")

    async def aclose(self) -> None:
        self.closed = True

    async def get_payment(self, payment_id) -> PaymentRecord:
        if self.read_error:
            raise self.read_error
        data = self.payments.get(str(payment_id))
        if data is None:
            raise GatewayNotFoundError(f"payment {payment_id} not found", status_code=404)
        return PaymentRecord.model_validate(data)

    async def get_preapproval(self, preapproval_id: str) -> PreapprovalRecord:
        if self.read_error:
            raise self.read_error
        data = self.preapprovals.get(str(preapproval_id))
        if data is None:
            raise GatewayNotFoundError(f"preapproval {preapproval_id} not found", status_code=404)
        return PreapprovalRecord.model_validate(data)

    async def create_preference(self, body: dict[str, Any]) -> dict[str, Any]:
        if self.create_error:
            raise self.create_error
        self.created_preferences.append(body)
        return {
            "id": "pref-1",
            "init_point": "https://mp.test/checkout/pref-1",
            "sandbox_init_point": "https://sandbox.mp.test/checkout/pref-1",
        }

    async def create_preapproval(self, body: dict[str, Any]) -> dict[str, Any]:
        if self.create_error:
            raise self.create_error
        self.created_preapprovals.append(body)
        return {
            "id": "pre-1",
            "init_point": "https://mp.test/subscriptions/pre-1",
            "sandbox_init_point": "https://sandbox.mp.test/subscriptions/pre-1",
            "status": "pending",
        }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        mercadopago_access_token="TEST-token",
        mercadopago_webhook_secret="",
        public_url="https://market.test/",
        firebase_project_id="",
        openai_api_key="",
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def projector(store) -> StateProjector:
    return StateProjector(store)


@pytest.fixture
def processor(gateway, projector) -> WebhookProcessor:
    return WebhookProcessor(gateway, projector)


@pytest.fixture
def sender() -> MagicMock:
    return MagicMock()


@pytest.fixture
def services(settings, store, gateway, projector, processor, sender) -> Services:
    return Services(
        settings=settings,
        store=store,
        gateway=gateway,
        projector=projector,
        webhook_processor=processor,
        notifications=NotificationDispatcher(sender),
        intent_analyzer=SearchIntentAnalyzer(),
        assistant=MilyAssistant(),
    )


@pytest.fixture
def app(settings, services):
    return create_app(settings=settings, services=services)


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
