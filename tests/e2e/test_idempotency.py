"""E2E tests for receiver-side de-duplication by delivery id."""

import pytest

from src.delivery.signer import DELIVERY_HEADER
from src.receiver.server import WebhookReceiverServer


pytestmark = pytest.mark.e2e


@pytest.fixture
def idempotent_receiver(webhook_secret):
    """Receiver with de-duplication enabled."""
    server = WebhookReceiverServer(secret=webhook_secret)
    server.enable_idempotency()
    server.start()
    yield server
    server.stop()


class TestIdempotency:
    """At-least-once delivery: repeats share a delivery id the receiver can dedupe on."""

    def test_redelivery_reuses_delivery_id(
        self, executor, registry, idempotent_receiver, webhook_secret, replay_manager, run_retries,
    ):
        sub = registry.create(idempotent_receiver.url, ["deal_created"], secret=webhook_secret)
        record = executor.deliver_new(sub, "deal_created", {"dealId": "d1"})

        replay_manager.retry_delivery(record.id)
        record = run_retries(record.id)

        assert idempotent_receiver.get_request_count() == 2
        assert idempotent_receiver.get_processed_count() == 1
        assert idempotent_receiver.was_delivery_processed(record.id)
        assert record.response_body == '{"status": "already_processed"}'

    def test_distinct_deliveries_are_both_processed(
        self, executor, registry, idempotent_receiver, webhook_secret,
    ):
        sub = registry.create(idempotent_receiver.url, ["deal_created"], secret=webhook_secret)

        first = executor.deliver_new(sub, "deal_created", {"dealId": "d1"})
        second = executor.deliver_new(sub, "deal_created", {"dealId": "d1"})

        assert first.id != second.id
        assert idempotent_receiver.get_processed_count() == 2

    def test_delivery_id_header_matches_record(
        self, executor, registry, idempotent_receiver, webhook_secret,
    ):
        sub = registry.create(idempotent_receiver.url, ["tag_added"], secret=webhook_secret)

        record = executor.deliver_new(sub, "tag_added", {"contactId": "c1"})

        received = idempotent_receiver.get_received_events()
        assert received[0]["headers"][DELIVERY_HEADER] == record.id
