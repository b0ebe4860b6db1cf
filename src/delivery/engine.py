import copy
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait

from src.delivery.executor import DeliveryExecutor
from src.events.bus import EventBus
from src.models.delivery import DeliveryRecord
from src.models.event import EventName
from src.models.subscription import Subscription
from src.subscriptions.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class WebhookDeliveryEngine:
    """Fans bus events out to matching webhooks without blocking the emitter.

    The bus listener only snapshots the payload and hands the work to a
    thread pool. Resolution of subscriptions and every delivery attempt
    happen on pool threads, and their errors are logged there.
    """

    def __init__(
        self,
        bus: EventBus,
        registry: SubscriptionRegistry,
        executor: DeliveryExecutor,
        max_workers: int = 8,
        events: list[EventName] | None = None,
    ):
        self.bus = bus
        self.registry = registry
        self.executor = executor
        self.max_workers = max_workers
        self.events = list(events) if events is not None else list(EventName)
        self._pool: ThreadPoolExecutor | None = None
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._pool is not None

    def start(self) -> None:
        if self._pool is not None:
            return
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="webhook-delivery")
        for event in self.events:
            self.bus.subscribe(event, self._on_event)
        logger.info("Delivery engine initialized, listening for %d events", len(self.events))

    def stop(self, wait_for_deliveries: bool = True) -> None:
        if self._pool is None:
            return
        for event in self.events:
            self.bus.unsubscribe(event, self._on_event)
        pool, self._pool = self._pool, None
        pool.shutdown(wait=wait_for_deliveries)
        logger.info("Delivery engine stopped")

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until all handed-off work has finished. False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = set(self._pending)
            if not pending:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            wait(pending, timeout=remaining)

    def _on_event(self, event: EventName, payload: dict) -> None:
        # Snapshot now so later mutations by the emitter never reach the record.
        snapshot = copy.deepcopy(payload)
        self._submit(self.dispatch, event, snapshot)

    def _submit(self, fn, *args) -> None:
        pool = self._pool
        if pool is None:
            logger.warning("Delivery engine is stopped, dropping %s", fn.__name__)
            return
        try:
            future = pool.submit(self._guarded, fn, *args)
        except RuntimeError:
            logger.warning("Delivery pool shut down, dropping %s", fn.__name__)
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    @staticmethod
    def _guarded(fn, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Error dispatching webhook work %s", fn.__name__)

    def dispatch(self, event: EventName, payload: dict) -> list[Subscription]:
        """Start one delivery per active subscription listening to ``event``."""
        subscriptions = self.registry.active_for_event(event)
        if not subscriptions:
            return []

        logger.info('Dispatching "%s" to %d webhook(s)', event.value, len(subscriptions))
        for subscription in subscriptions:
            self._submit(self.deliver, subscription, event, payload)
        return subscriptions

    def deliver(self, subscription: Subscription, event: EventName, payload: dict) -> DeliveryRecord:
        return self.executor.deliver_new(subscription, event.value, payload)
