"""Push notification fan-out through Firebase Cloud Messaging.

Tokens are sent in multicast batches capped at 500 per call. Delivery is
best-effort: nothing is retried, and a batch whose send call raises is
counted as failed for every token in it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol

from firebase_admin import messaging
from pydantic import BaseModel, Field, field_validator

from family_market.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

FCM_MULTICAST_LIMIT = 500
DEFAULT_ICON = "/icon-192.png"
DEFAULT_LINK = "/dashboard"
NOTIFICATION_TAG = "family-market-notification"


class NotificationContent(BaseModel):
    title: str
    body: str
    icon: str | None = None


class NotificationPayload(BaseModel):
    """Payload the dashboard sends: visible notification plus a data map."""

    notification: NotificationContent
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def null_data_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class MulticastSender(Protocol):
    def send_each_for_multicast(
        self, message: messaging.MulticastMessage
    ) -> messaging.BatchResponse: ...


@dataclass
class DispatchReport:
    """Aggregated outcome across all batches."""

    total_tokens: int
    batches: int = 0
    success_count: int = 0
    failure_count: int = 0
    failed_tokens: list[dict[str, str]] = field(default_factory=list)

    def to_response(self, notification_id: str | None) -> dict[str, Any]:
        return {
            "success": True,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "totalTokens": self.total_tokens,
            "notificationId": notification_id,
            "failedTokens": list(self.failed_tokens),
        }


def chunk_tokens(tokens: list[str], size: int) -> Iterator[list[str]]:
    """Split tokens into consecutive batches of at most ``size``."""
    if size <= 0:
        raise ValueError("batch size must be positive")
    for start in range(0, len(tokens), size):
        yield tokens[start:start + size]


def _short(token: str) -> str:
    return f"{token[:20]}..."


def build_multicast_message(payload: NotificationPayload, tokens: list[str]) -> messaging.MulticastMessage:
    """FCM multicast message for one batch of tokens."""
    content = payload.notification
    # FCM only accepts absolute image URLs; relative icons stay webpush-only
    image = content.icon if content.icon and content.icon.startswith("http") else None

    # FCM data values must be strings
    data = {str(k): str(v) for k, v in payload.data.items() if v is not None}
    data["click_action"] = "FLUTTER_NOTIFICATION_CLICK"

    return messaging.MulticastMessage(
        tokens=tokens,
        notification=messaging.Notification(title=content.title, body=content.body, image=image),
        data=data,
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(
                icon=content.icon or DEFAULT_ICON,
                badge=DEFAULT_ICON,
                require_interaction=False,
                tag=NOTIFICATION_TAG,
                vibrate=[200, 100, 200],
            ),
            fcm_options=messaging.WebpushFCMOptions(link=payload.data.get("url") or DEFAULT_LINK),
        ),
    )


class NotificationDispatcher:
    """Sends one payload to an unbounded list of device tokens."""

    def __init__(
        self,
        sender: MulticastSender,
        batch_size: int = FCM_MULTICAST_LIMIT,
        failed_tokens_limit: int = 10,
    ) -> None:
        self._sender = sender
        self.batch_size = min(batch_size, FCM_MULTICAST_LIMIT)
        self.failed_tokens_limit = failed_tokens_limit

    def _record_failure(self, report: DispatchReport, token: str, error: str) -> None:
        if len(report.failed_tokens) < self.failed_tokens_limit:
            report.failed_tokens.append({"token": token, "error": error})

    async def send(self, tokens: list[str], payload: NotificationPayload) -> DispatchReport:
        report = DispatchReport(total_tokens=len(tokens))
        batches = list(chunk_tokens(tokens, self.batch_size))
        logger.info(
            "Sending '%s' to %d devices in %d batches",
            payload.notification.title,
            len(tokens),
            len(batches),
        )

        for index, batch in enumerate(batches, start=1):
            report.batches += 1
            message = build_multicast_message(payload, batch)
            try:
                response = await asyncio.to_thread(self._sender.send_each_for_multicast, message)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.error("Batch %d/%d failed entirely: %s", index, len(batches), e)
                report.failure_count += len(batch)
                for token in batch:
                    self._record_failure(report, token, str(e))
                continue

            report.success_count += response.success_count
            report.failure_count += response.failure_count
            logger.info(
                "Batch %d/%d: %d sent, %d failed",
                index,
                len(batches),
                response.success_count,
                response.failure_count,
            )
            for token, result in zip(batch, response.responses):
                if result.success:
                    continue
                error = str(result.exception) if result.exception else "Unknown error"
                self._record_failure(report, token, error)
                logger.warning("Delivery to %s failed: %s", _short(token), error)

        logger.info(
            "Notification sent: %d succeeded, %d failed",
            report.success_count,
            report.failure_count,
        )
        return report
