"""Tests for the webhook dedup ledger."""

from unittest.mock import MagicMock, patch

from family_market.webhooks.idempotency import WebhookLedger, ledger_key


def test_key_pattern():
    assert ledger_key("payment", "123", "approved") == "webhook:seen:mercadopago:payment:123:approved"


def test_disabled_ledger_always_claims():
    ledger = WebhookLedger("redis://unused", enabled=False)
    with patch("family_market.webhooks.idempotency.redis.from_url") as from_url:
        assert ledger.claim("payment", "1", "approved") is True
        assert ledger.claim("payment", "1", "approved") is True
    from_url.assert_not_called()


@patch("family_market.webhooks.idempotency.redis.from_url")
def test_first_claim_wins(from_url):
    client = MagicMock()
    client.set.side_effect = [True, None]
    from_url.return_value = client
    ledger = WebhookLedger("redis://localhost", enabled=True)

    assert ledger.claim("payment", "1", "approved") is True
    assert ledger.claim("payment", "1", "approved") is False
    client.set.assert_called_with(
        "webhook:seen:mercadopago:payment:1:approved", "1", nx=True, ex=86400
    )


@patch("family_market.webhooks.idempotency.redis.from_url")
def test_redis_down_fails_open(from_url):
    client = MagicMock()
    client.set.side_effect = ConnectionError("refused")
    from_url.return_value = client
    ledger = WebhookLedger("redis://localhost", enabled=True)

    assert ledger.claim("payment", "1", "approved") is True


@patch("family_market.webhooks.idempotency.redis.from_url")
def test_release_deletes_key(from_url):
    client = MagicMock()
    from_url.return_value = client
    ledger = WebhookLedger("redis://localhost", enabled=True)

    ledger.release("preapproval", "pre-1", "paused")

    client.delete.assert_called_once_with("webhook:seen:mercadopago:preapproval:pre-1:paused")


def test_empty_resource_id_not_tracked():
    ledger = WebhookLedger("redis://unused", enabled=True)
    assert ledger.claim("payment", "", "approved") is True
