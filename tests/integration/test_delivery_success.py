"""Integration tests for successful webhook delivery."""

import json

import pytest

from src.delivery.executor import DeliveryExecutor
from src.delivery.signer import DELIVERY_HEADER, EVENT_HEADER, SIGNATURE_HEADER
from src.models.delivery import DeliveryStatus
from src.utils.crypto import verify_signature


pytestmark = pytest.mark.integration


@pytest.fixture
def subscription(registry, receiver, webhook_secret):
    return registry.create(receiver.url, ["deal_created"], secret=webhook_secret)


class TestDeliverySuccess:
    """Test first-attempt delivery against a real local receiver."""

    def test_2xx_marks_record_success(self, executor, subscription, receiver):
        record = executor.deliver_new(subscription, "deal_created", {"dealId": "d1"})

        assert record.status == DeliveryStatus.SUCCESS
        assert record.attempt == 1
        assert record.response_status == 200
        assert record.next_retry_at is None
        assert record.lease_expires_at is None
        assert record.completed_at is not None
        assert record.duration_ms > 0

    def test_receiver_gets_signed_envelope(self, executor, subscription, receiver, webhook_secret):
        record = executor.deliver_new(subscription, "deal_created", {"dealId": "d1"})

        received = receiver.get_received_events()
        assert len(received) == 1
        event = received[0]
        assert event["envelope"]["event"] == "deal_created"
        assert event["envelope"]["payload"] == {"dealId": "d1"}
        assert event["envelope"]["timestamp"].endswith("Z")
        assert event["headers"][EVENT_HEADER] == "deal_created"
        assert event["headers"][DELIVERY_HEADER] == record.id
        assert verify_signature(event["raw_body"], webhook_secret, event["headers"][SIGNATURE_HEADER])

    @pytest.mark.parametrize("code", [200, 201, 202, 204])
    def test_any_2xx_is_success(self, executor, subscription, receiver, code):
        receiver.set_response_code(code)
        record = executor.deliver_new(subscription, "deal_created", {})
        assert record.status == DeliveryStatus.SUCCESS
        assert record.response_status == code

    def test_response_body_is_stored(self, executor, subscription, receiver):
        record = executor.deliver_new(subscription, "deal_created", {})
        assert json.loads(record.response_body) == {"status": "ok"}

    def test_response_body_is_truncated(self, store, policy, delivery_logger, subscription, receiver):
        short = DeliveryExecutor(store, policy, delivery_logger, response_body_limit=5)
        record = short.deliver_new(subscription, "deal_created", {})
        assert len(record.response_body) == 5

    def test_success_recorded_in_metrics(self, executor, subscription, receiver, metrics):
        executor.deliver_new(subscription, "deal_created", {})
        assert metrics.event_counts("deal_created") == {"success": 1, "failure": 0}

    def test_record_persisted_with_payload_snapshot(self, executor, subscription, receiver, replay_manager):
        payload = {"deal": {"stage": "new"}}
        record = executor.deliver_new(subscription, "deal_created", payload)
        payload["deal"]["stage"] = "won"

        stored = replay_manager.get_delivery(record.id)
        assert stored.payload == {"deal": {"stage": "new"}}
        assert stored.subscription_id == subscription.id
        assert stored.event_name == "deal_created"
        assert stored.max_attempts == 5
