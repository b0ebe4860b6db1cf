import logging
import threading
from datetime import datetime
from typing import Callable

from src.delivery.executor import COLLECTION, DeliveryExecutor
from src.models.delivery import DeliveryRecord, DeliveryStatus
from src.store.record_store import RecordStore
from src.subscriptions.registry import SubscriptionRegistry
from src.utils.clock import from_iso, utc_now

logger = logging.getLogger(__name__)


class RetryScheduler:
    """Periodically re-attempts pending deliveries whose retry time has come.

    A sweep also picks up records whose in-flight lease expired, which is
    how deliveries interrupted by a process crash get resumed.
    """

    def __init__(
        self,
        store: RecordStore,
        registry: SubscriptionRegistry,
        executor: DeliveryExecutor,
        interval_seconds: float = 30,
        batch_size: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.registry = registry
        self.executor = executor
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def due_records(self, now: datetime | None = None) -> list[DeliveryRecord]:
        now = now or self.clock()

        def due_at(r: dict) -> datetime | None:
            if r.get("next_retry_at"):
                return from_iso(r["next_retry_at"])
            return from_iso(r.get("lease_expires_at"))

        def is_due(r: dict) -> bool:
            if r.get("status") != DeliveryStatus.PENDING.value:
                return False
            when = due_at(r)
            return when is not None and when <= now

        records = sorted(self.store.find(COLLECTION, is_due), key=due_at)
        return [DeliveryRecord.from_record(r) for r in records[: self.batch_size]]

    def sweep(self, now: datetime | None = None) -> int:
        """Attempt every due record in one batch. Returns how many were handled."""
        due = self.due_records(now)
        if not due:
            return 0

        logger.info("Processing %d pending retries", len(due))
        for record in due:
            try:
                subscription = self.registry.get(record.subscription_id)
                self.executor.attempt(record, subscription)
            except Exception:
                logger.exception("Retry of delivery %s failed unexpectedly", record.id)
        return len(due)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="webhook-retry-scheduler", daemon=True)
        self._thread.start()
        logger.info("Retry scheduler started (every %ss)", self.interval_seconds)

    def stop(self, timeout: float = 5) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Retry poll error")
