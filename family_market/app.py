"""FastAPI application factory.

Run with::

    uvicorn family_market.app:create_app --factory
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from family_market.config import Settings, get_settings
from family_market.notifications.routes import router as notifications_router
from family_market.payments.routes import router as payments_router
from family_market.search.routes import router as search_router
from family_market.services import Services, build_services
from family_market.webhooks.handlers import register_webhook_routes

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def install_middleware(app: FastAPI, settings: Settings) -> None:
    """Install CORS. Call after routes are registered."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the HTTP application.

    ``services`` lets tests inject fakes; otherwise production collaborators
    are wired from ``settings``.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.services.aclose()

    app = FastAPI(title="Family Market", lifespan=lifespan)
    app.state.services = services

    register_webhook_routes(app)
    app.include_router(payments_router)
    app.include_router(notifications_router)
    app.include_router(search_router)
    install_middleware(app, settings)

    logger.info("Family Market app created (public url %s)", settings.base_url)
    return app
