from datetime import datetime, timedelta, timezone

import pytest

from src.delivery.engine import WebhookDeliveryEngine
from src.delivery.executor import DeliveryExecutor
from src.delivery.logger import DeliveryLogger
from src.delivery.retry import RetryPolicy
from src.delivery.scheduler import RetryScheduler
from src.events.bus import EventBus
from src.observability.metrics import MetricsCollector
from src.receiver.server import WebhookReceiverServer
from src.replay.manager import DeliveryReplayManager
from src.store.record_store import RecordStore
from src.subscriptions.registry import SubscriptionRegistry
from src.utils.factories import EventFactory, SubscriptionFactory


WEBHOOK_SECRET = "test-secret-key-for-hmac"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return RecordStore()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def registry(store):
    return SubscriptionRegistry(store)


@pytest.fixture
def policy():
    return RetryPolicy()


@pytest.fixture
def delivery_logger(store):
    return DeliveryLogger(store)


@pytest.fixture
def metrics():
    return MetricsCollector(window_seconds=300)


@pytest.fixture
def executor(store, policy, delivery_logger, metrics):
    return DeliveryExecutor(
        store=store,
        policy=policy,
        delivery_logger=delivery_logger,
        metrics=metrics,
        timeout_seconds=5,
    )


@pytest.fixture
def scheduler(store, registry, executor):
    return RetryScheduler(store=store, registry=registry, executor=executor)


@pytest.fixture
def engine(bus, registry, executor):
    eng = WebhookDeliveryEngine(bus=bus, registry=registry, executor=executor, max_workers=4)
    eng.start()
    yield eng
    eng.stop()


@pytest.fixture
def replay_manager(store, delivery_logger, policy):
    return DeliveryReplayManager(store=store, delivery_logger=delivery_logger, policy=policy)


@pytest.fixture
def receiver():
    server = WebhookReceiverServer(secret=WEBHOOK_SECRET)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def receiver_no_auth():
    """Receiver without signature verification."""
    server = WebhookReceiverServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def subscription_factory():
    return SubscriptionFactory


@pytest.fixture
def event_factory():
    return EventFactory


@pytest.fixture
def run_retries(scheduler, replay_manager):
    """Sweep repeatedly, jumping to each record's retry time, until it is terminal."""

    def run(delivery_id: str, max_sweeps: int = 20):
        record = replay_manager.get_delivery(delivery_id)
        for _ in range(max_sweeps):
            if record.is_terminal:
                break
            scheduler.sweep(now=record.next_retry_at or record.lease_expires_at)
            record = replay_manager.get_delivery(delivery_id)
        return record

    return run
