import copy
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable

import requests

from src.delivery.logger import DeliveryLogger
from src.delivery.retry import RetryPolicy
from src.delivery.signer import build_body, build_headers
from src.models.delivery import DeliveryAttempt, DeliveryRecord, DeliveryStatus
from src.models.subscription import Subscription
from src.observability.metrics import MetricsCollector
from src.store.record_store import RecordStore
from src.utils.clock import to_iso, utc_now

logger = logging.getLogger(__name__)

COLLECTION = "webhook_deliveries"

INACTIVE_REASON = "Webhook deactivated or deleted"
EXHAUSTED_REASON = "Attempt budget exhausted before delivery completed"


class DeliveryExecutor:
    """Performs single delivery attempts and persists the resulting state.

    Each attempt starts by claiming the record with a compare-and-swap on
    its status, attempt count, retry time and lease. Only the caller that
    wins the claim sends the request, so an event-triggered send and a
    scheduler sweep can never both attempt the same record.
    """

    def __init__(
        self,
        store: RecordStore,
        policy: RetryPolicy,
        delivery_logger: DeliveryLogger,
        metrics: MetricsCollector | None = None,
        timeout_seconds: float = 10,
        response_body_limit: int = 2048,
        lease_seconds: float = 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.policy = policy
        self.delivery_logger = delivery_logger
        self.metrics = metrics
        self.timeout_seconds = timeout_seconds
        self.response_body_limit = response_body_limit
        self.lease_seconds = lease_seconds
        self.clock = clock

    def create_record(self, subscription: Subscription, event_name: str, payload: dict) -> DeliveryRecord:
        """Persist a fresh record, reserved for the caller that is about to send it."""
        now = self.clock()
        record = DeliveryRecord(
            id=str(uuid.uuid4()),
            subscription_id=subscription.id,
            event_name=event_name,
            payload=copy.deepcopy(payload),
            status=DeliveryStatus.PENDING,
            attempt=0,
            max_attempts=self.policy.max_attempts,
            lease_expires_at=now + timedelta(seconds=self.lease_seconds),
            created_at=now,
        )
        return DeliveryRecord.from_record(self.store.insert(COLLECTION, record.to_record()))

    def deliver_new(self, subscription: Subscription, event_name: str, payload: dict) -> DeliveryRecord:
        """Create a record for a newly emitted event and make the first attempt."""
        record = self.create_record(subscription, event_name, payload)
        result = self.attempt(record, subscription)
        if result is None:
            current = self.store.get(COLLECTION, record.id)
            return DeliveryRecord.from_record(current) if current else record
        return result

    def attempt(self, record: DeliveryRecord, subscription: Subscription | None) -> DeliveryRecord | None:
        """Run the next attempt for ``record``.

        Returns the record as persisted afterwards, or None if another
        worker claimed it first or took it over before the outcome was saved.
        """
        if subscription is None or not subscription.active:
            return self.abandon(record, INACTIVE_REASON)
        if not self.policy.has_attempts_remaining(record.attempt, record.max_attempts):
            return self.abandon(record, EXHAUSTED_REASON)

        claimed = self._claim(record)
        if claimed is None:
            logger.debug("Delivery %s already claimed elsewhere, skipping", record.id)
            return None
        return self._send(claimed, subscription)

    def abandon(self, record: DeliveryRecord, reason: str) -> DeliveryRecord | None:
        """Terminalize a pending record as failed without using an attempt."""
        updated = self.store.compare_and_update(
            COLLECTION,
            record.id,
            self._expected(record),
            {
                "status": DeliveryStatus.FAILED.value,
                "response_body": reason,
                "next_retry_at": None,
                "lease_expires_at": None,
                "completed_at": to_iso(self.clock()),
            },
        )
        if updated is None:
            return None
        logger.error("Delivery %s marked failed: %s", record.id, reason)
        return DeliveryRecord.from_record(updated)

    def _expected(self, record: DeliveryRecord) -> dict:
        return {
            "status": DeliveryStatus.PENDING.value,
            "attempt": record.attempt,
            "next_retry_at": to_iso(record.next_retry_at),
            "lease_expires_at": to_iso(record.lease_expires_at),
        }

    def _claim(self, record: DeliveryRecord) -> DeliveryRecord | None:
        lease = self.clock() + timedelta(seconds=self.lease_seconds)
        updated = self.store.compare_and_update(
            COLLECTION,
            record.id,
            self._expected(record),
            {
                "attempt": record.attempt + 1,
                "next_retry_at": None,
                "lease_expires_at": to_iso(lease),
            },
        )
        return DeliveryRecord.from_record(updated) if updated else None

    def _send(self, record: DeliveryRecord, subscription: Subscription) -> DeliveryRecord | None:
        body = build_body(record.event_name, record.payload, self.clock())
        headers = build_headers(body, subscription.secret, record.event_name, record.id)

        start = time.monotonic()
        status_code = None
        response_body = None
        error = None

        try:
            status_code, response_body = self._post(subscription.target_url, body, headers)
        except requests.exceptions.Timeout as e:
            error = "timeout"
            response_body = f"timeout: {e}"[: self.response_body_limit]
        except requests.exceptions.ConnectionError as e:
            error = "connection_error"
            response_body = f"connection_error: {e}"[: self.response_body_limit]
        except requests.exceptions.RequestException as e:
            error = str(e)
            response_body = error[: self.response_body_limit]

        duration_ms = (time.monotonic() - start) * 1000

        self.delivery_logger.log(DeliveryAttempt(
            attempt_id=f"att_{uuid.uuid4().hex[:16]}",
            delivery_id=record.id,
            attempt_number=record.attempt,
            url=subscription.target_url,
            status_code=status_code,
            timestamp=self.clock(),
            response_time_ms=duration_ms,
            error=error,
        ))

        if self.policy.is_success(status_code):
            return self._mark_success(record, subscription, status_code, response_body, duration_ms)
        return self._handle_failure(record, status_code, response_body, duration_ms)

    def _post(self, url: str, body: bytes, headers: dict) -> tuple[int, str]:
        """POST ``body`` and read the response within one overall deadline.

        The ``requests`` timeout bounds the connect and each socket read, not
        the whole exchange, so the body is streamed and the attempt raises
        ``ReadTimeout`` as soon as the deadline passes. At most enough bytes
        for ``response_body_limit`` characters are read.
        """
        deadline = time.monotonic() + self.timeout_seconds
        max_bytes = self.response_body_limit * 4

        def check_deadline():
            if time.monotonic() > deadline:
                raise requests.exceptions.ReadTimeout(
                    f"No complete response within {self.timeout_seconds}s"
                )

        with requests.post(url, data=body, headers=headers, timeout=self.timeout_seconds, stream=True) as resp:
            content = bytearray()
            for chunk in resp.iter_content(chunk_size=1):
                check_deadline()
                content.extend(chunk)
                if len(content) >= max_bytes:
                    break
            check_deadline()
            try:
                text = content.decode(resp.encoding or "utf-8", errors="replace")
            except LookupError:
                text = content.decode("utf-8", errors="replace")
            return resp.status_code, text[: self.response_body_limit]

    def _finish(self, record: DeliveryRecord, changes: dict) -> DeliveryRecord | None:
        """Persist an attempt's outcome if ``record`` still holds the claim.

        A manual reset or a lease takeover changes ``attempt`` or the lease,
        in which case the outcome is stale and dropped.
        """
        updated = self.store.compare_and_update(
            COLLECTION,
            record.id,
            {
                "status": DeliveryStatus.PENDING.value,
                "attempt": record.attempt,
                "lease_expires_at": to_iso(record.lease_expires_at),
            },
            changes,
        )
        if updated is None:
            logger.warning(
                "Delivery %s attempt %d lost its claim during send, result discarded",
                record.id, record.attempt,
            )
            return None
        return DeliveryRecord.from_record(updated)

    def _mark_success(self, record, subscription, status_code, response_body, duration_ms) -> DeliveryRecord | None:
        if self.metrics:
            self.metrics.record_success(record.event_name)
        updated = self._finish(record, {
            "status": DeliveryStatus.SUCCESS.value,
            "response_status": status_code,
            "response_body": response_body,
            "duration_ms": duration_ms,
            "next_retry_at": None,
            "lease_expires_at": None,
            "completed_at": to_iso(self.clock()),
        })
        if updated is not None:
            logger.info(
                "Delivered %s to %s (%s) in %.0fms",
                record.event_name, subscription.target_url, status_code, duration_ms,
            )
        return updated

    def _handle_failure(self, record, status_code, response_body, duration_ms) -> DeliveryRecord | None:
        if self.metrics:
            self.metrics.record_failure(record.event_name)

        now = self.clock()
        changes = {
            "response_status": status_code,
            "response_body": response_body,
            "duration_ms": duration_ms,
            "lease_expires_at": None,
        }
        retrying = self.policy.has_attempts_remaining(record.attempt, record.max_attempts)
        if retrying:
            next_retry_at = self.policy.next_retry_at(record.attempt, now)
            changes.update(status=DeliveryStatus.PENDING.value, next_retry_at=to_iso(next_retry_at))
        else:
            changes.update(
                status=DeliveryStatus.FAILED.value,
                next_retry_at=None,
                completed_at=to_iso(now),
            )

        updated = self._finish(record, changes)
        if updated is None:
            return None
        if retrying:
            logger.warning(
                "Delivery %s failed (attempt %d/%d), retrying at %s",
                record.id, record.attempt, record.max_attempts, next_retry_at.isoformat(),
            )
        else:
            logger.error(
                "Delivery %s permanently failed after %d attempts", record.id, record.attempt,
            )
        return updated
