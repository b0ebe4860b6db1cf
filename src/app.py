import logging

from src.config import DeliverySettings
from src.delivery.engine import WebhookDeliveryEngine
from src.delivery.executor import DeliveryExecutor
from src.delivery.logger import DeliveryLogger
from src.delivery.retry import RetryPolicy
from src.delivery.scheduler import RetryScheduler
from src.events.bus import EventBus
from src.observability.metrics import MetricsCollector
from src.replay.manager import DeliveryReplayManager
from src.store.record_store import RecordStore
from src.subscriptions.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


class WebhookApplication:
    """Wires the bus, store, registry and delivery components together.

    Domain code calls ``app.bus.emit(...)``; operator tooling uses
    ``app.registry`` and ``app.replay``.
    """

    def __init__(
        self,
        settings: DeliverySettings | None = None,
        store: RecordStore | None = None,
        bus: EventBus | None = None,
    ):
        self.settings = settings or DeliverySettings()
        self.store = store if store is not None else RecordStore(self.settings.data_dir)
        self.bus = bus if bus is not None else EventBus()
        self.metrics = MetricsCollector()
        self.policy = RetryPolicy.from_settings(self.settings)
        self.registry = SubscriptionRegistry(self.store)
        self.delivery_logger = DeliveryLogger(self.store)
        self.executor = DeliveryExecutor(
            store=self.store,
            policy=self.policy,
            delivery_logger=self.delivery_logger,
            metrics=self.metrics,
            timeout_seconds=self.settings.request_timeout_seconds,
            response_body_limit=self.settings.response_body_limit,
            lease_seconds=self.settings.lease_seconds,
        )
        self.engine = WebhookDeliveryEngine(
            bus=self.bus,
            registry=self.registry,
            executor=self.executor,
            max_workers=self.settings.max_workers,
        )
        self.scheduler = RetryScheduler(
            store=self.store,
            registry=self.registry,
            executor=self.executor,
            interval_seconds=self.settings.retry_poll_interval_seconds,
            batch_size=self.settings.retry_batch_size,
        )
        self.replay = DeliveryReplayManager(
            store=self.store,
            delivery_logger=self.delivery_logger,
            policy=self.policy,
        )

    def start(self) -> None:
        self.engine.start()
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        self.engine.stop()
        summary = self.metrics.window()
        if summary["total"]:
            logger.info(
                "Webhook delivery stopped; last %ds: %d attempts, %d failed (%.1f%%)",
                self.metrics.window_seconds, summary["total"], summary["failure"],
                summary["failure_rate"] * 100,
            )

    def __enter__(self) -> "WebhookApplication":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


def create_app(settings: DeliverySettings | None = None) -> WebhookApplication:
    """Build an application from ``settings`` or the ``WEBHOOK_*`` environment."""
    settings = settings or DeliverySettings()
    configure_logging(settings.log_level)
    app = WebhookApplication(settings)
    logger.info("Webhook delivery configured (data_dir=%s)", settings.data_dir or "memory")
    return app
