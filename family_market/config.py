"""Family Market backend configuration."""

from __future__ import annotations

import functools

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings for the Family Market backend."""

    # MercadoPago
    mercadopago_access_token: str = ""
    mercadopago_webhook_secret: str = ""  # empty = signature check disabled
    mercadopago_api_url: str = "https://api.mercadopago.com"
    public_url: str = "https://familymarket.vercel.app"

    # Firebase service account (resolved lazily on first use)
    firebase_project_id: str = ""
    firebase_client_email: str = ""
    firebase_private_key: str = ""

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_chat_model: str = "gpt-3.5-turbo"

    # Webhook dedup ledger
    redis_url: str = "redis://localhost:6379/0"
    webhook_dedup_enabled: bool = False

    # Business rules
    featured_days: int = 7
    subscription_amount: float = 2000
    subscription_days: int = 30
    currency_id: str = "ARS"

    # Push notifications (FCM caps multicast at 500 tokens)
    notification_batch_size: int = 500
    failed_tokens_report_limit: int = 10

    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def base_url(self) -> str:
        """Public URL without a trailing slash."""
        return self.public_url.rstrip("/")


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings instance."""
    return Settings()
