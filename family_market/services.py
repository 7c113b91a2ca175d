"""Process-wide service container.

Built once by the app factory and stored on ``app.state.services``;
handlers reach every external collaborator through it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from family_market.config import Settings
from family_market.firebase import FirebaseClients
from family_market.notifications.dispatcher import NotificationDispatcher
from family_market.payments.gateway import MercadoPagoGateway
from family_market.payments.projector import StateProjector
from family_market.search.assistant import MilyAssistant
from family_market.search.intent import SearchIntentAnalyzer
from family_market.store import DocumentStore, FirestoreStore
from family_market.webhooks.dispatcher import WebhookProcessor
from family_market.webhooks.idempotency import WebhookLedger

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler may need."""

    settings: Settings
    store: DocumentStore
    gateway: MercadoPagoGateway
    projector: StateProjector
    webhook_processor: WebhookProcessor
    notifications: NotificationDispatcher
    intent_analyzer: SearchIntentAnalyzer
    assistant: MilyAssistant

    async def aclose(self) -> None:
        await self.gateway.aclose()


def build_services(settings: Settings) -> Services:
    """Wire the production collaborators from settings."""
    firebase = FirebaseClients(settings)
    store = FirestoreStore(firebase)
    gateway = MercadoPagoGateway(
        settings.mercadopago_access_token,
        base_url=settings.mercadopago_api_url,
    )
    projector = StateProjector(
        store,
        featured_days=settings.featured_days,
        subscription_days=settings.subscription_days,
        currency_id=settings.currency_id,
    )
    ledger = WebhookLedger(settings.redis_url, enabled=settings.webhook_dedup_enabled)
    logger.info(
        "Services built (webhook dedup %s)",
        "enabled" if settings.webhook_dedup_enabled else "disabled",
    )
    return Services(
        settings=settings,
        store=store,
        gateway=gateway,
        projector=projector,
        webhook_processor=WebhookProcessor(gateway, projector, ledger),
        notifications=NotificationDispatcher(
            firebase,
            batch_size=settings.notification_batch_size,
            failed_tokens_limit=settings.failed_tokens_report_limit,
        ),
        intent_analyzer=SearchIntentAnalyzer(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
        ),
        assistant=MilyAssistant(
            api_key=settings.openai_api_key,
            model=settings.openai_chat_model,
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
