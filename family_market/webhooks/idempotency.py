"""Webhook idempotency ledger: optional Redis-based deduplication.

Off by default: MercadoPago redeliveries are processed again and leave a
second audit record. When ``WEBHOOK_DEDUP_ENABLED`` is set:
- Each (kind, resource id, status/action) is claimed in Redis with a 24h TTL
- Key pattern: webhook:seen:mercadopago:{kind}:{id}:{state}
- If Redis is down, the delivery is processed (fail-open for availability)
"""

from __future__ import annotations

import logging

import redis

logger = logging.getLogger(__name__)

_DEDUP_TTL_SECONDS = 86400  # 24 hours

# Key prefix for webhook dedup
_KEY_PREFIX = "webhook:seen:mercadopago"


def ledger_key(kind: str, resource_id: str, state: str) -> str:
    return f"{_KEY_PREFIX}:{kind}:{resource_id}:{state}"


class WebhookLedger:
    """Claims webhook deliveries so each state transition is projected once."""

    def __init__(self, redis_url: str, enabled: bool = False) -> None:
        self.enabled = enabled
        self._redis_url = redis_url
        self._redis: redis.Redis | None = None

    def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    def claim(self, kind: str, resource_id: str, state: str) -> bool:
        """Claim a delivery for processing.

        Uses Redis SET NX for atomic check-and-mark.

        Returns:
            False only when dedup is enabled and the same transition was
            already claimed. True otherwise.
        """
        if not self.enabled or not resource_id:
            return True

        key = ledger_key(kind, resource_id, state)
        try:
            was_set = self._get_redis().set(key, "1", nx=True, ex=_DEDUP_TTL_SECONDS)
        except Exception:
            logger.warning(
                "Redis unavailable for webhook dedup: allowing %s/%s",
                kind,
                resource_id,
                exc_info=True,
            )
            return True
        if not was_set:
            logger.info("Duplicate webhook skipped: %s/%s (%s)", kind, resource_id, state)
            return False
        return True

    def release(self, kind: str, resource_id: str, state: str) -> None:
        """Forget a claim so a redelivery is processed (used after a failed projection)."""
        if not self.enabled or not resource_id:
            return
        try:
            self._get_redis().delete(ledger_key(kind, resource_id, state))
        except Exception:
            logger.warning("Failed to release webhook claim: %s/%s", kind, resource_id)
