import logging
from datetime import datetime
from typing import Callable

from src.delivery.executor import COLLECTION
from src.delivery.logger import DeliveryLogger
from src.delivery.retry import RetryPolicy
from src.errors import DeliveryInProgressError, DeliveryNotFoundError
from src.models.delivery import DeliveryAttempt, DeliveryRecord, DeliveryStatus, Page
from src.store.record_store import RecordStore
from src.utils.clock import to_iso, utc_now

logger = logging.getLogger(__name__)


class DeliveryReplayManager:
    """Delivery history queries and manual retries for operator tooling."""

    def __init__(
        self,
        store: RecordStore,
        delivery_logger: DeliveryLogger,
        policy: RetryPolicy,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.delivery_logger = delivery_logger
        self.policy = policy
        self.clock = clock

    def get_delivery(self, delivery_id: str) -> DeliveryRecord | None:
        record = self.store.get(COLLECTION, delivery_id)
        return DeliveryRecord.from_record(record) if record else None

    def list_deliveries(
        self,
        subscription_id: str | None = None,
        event_name: str | None = None,
        status: str | DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page:
        """Deliveries matching every given filter, newest first."""
        status_value = DeliveryStatus(status).value if status is not None else None

        def predicate(r: dict) -> bool:
            if subscription_id and r.get("subscription_id") != subscription_id:
                return False
            if event_name and r.get("event_name") != event_name:
                return False
            if status_value and r.get("status") != status_value:
                return False
            return True

        records = sorted(
            self.store.find(COLLECTION, predicate),
            key=lambda r: r.get("created_at") or "",
            reverse=True,
        )
        return Page(
            entries=[DeliveryRecord.from_record(r) for r in records[offset:offset + limit]],
            total=len(records),
        )

    def get_attempts(self, delivery_id: str) -> list[DeliveryAttempt]:
        return self.delivery_logger.get_attempts(delivery_id)

    def retry_delivery(self, delivery_id: str) -> DeliveryRecord:
        """Reset a delivery so the next scheduler sweep starts a fresh attempt sequence.

        Works on records in any state except a pending one whose lease is
        still live; the full attempt budget is restored.
        """
        current = self.get_delivery(delivery_id)
        if current is None:
            raise DeliveryNotFoundError(f"Delivery {delivery_id} not found for retry")
        now = self.clock()
        if (
            current.status == DeliveryStatus.PENDING
            and current.lease_expires_at is not None
            and current.lease_expires_at > now
        ):
            raise DeliveryInProgressError(
                f"Delivery {delivery_id} has an attempt in flight until {current.lease_expires_at.isoformat()}"
            )

        updated = self.store.compare_and_update(
            COLLECTION,
            delivery_id,
            {
                "status": current.status.value,
                "attempt": current.attempt,
                "lease_expires_at": to_iso(current.lease_expires_at),
            },
            {
                "status": DeliveryStatus.PENDING.value,
                "attempt": 0,
                "max_attempts": self.policy.max_attempts,
                "next_retry_at": to_iso(now),
                "lease_expires_at": None,
                "completed_at": None,
            },
        )
        if updated is None:
            raise DeliveryInProgressError(f"Delivery {delivery_id} changed while queuing retry")
        logger.info("Delivery %s queued for manual retry", delivery_id)
        return DeliveryRecord.from_record(updated)

    def retry_failed(self, subscription_id: str | None = None) -> list[DeliveryRecord]:
        """Queue every failed delivery (optionally for one subscription) for retry."""
        failed = self.store.find(
            COLLECTION,
            lambda r: r.get("status") == DeliveryStatus.FAILED.value
            and (subscription_id is None or r.get("subscription_id") == subscription_id),
        )
        return [self.retry_delivery(r["id"]) for r in failed]
