from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.utils.clock import from_iso, to_iso


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({DeliveryStatus.SUCCESS, DeliveryStatus.FAILED})


@dataclass
class DeliveryRecord:
    """Cumulative state of every attempt to send one event to one subscription."""

    id: str
    subscription_id: str
    event_name: str
    payload: dict
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempt: int = 0
    max_attempts: int = 5
    response_status: int | None = None
    response_body: str | None = None
    duration_ms: float | None = None
    next_retry_at: datetime | None = None
    lease_expires_at: datetime | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "subscription_id": self.subscription_id,
            "event_name": self.event_name,
            "payload": self.payload,
            "status": self.status.value,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "response_status": self.response_status,
            "response_body": self.response_body,
            "duration_ms": self.duration_ms,
            "next_retry_at": to_iso(self.next_retry_at),
            "lease_expires_at": to_iso(self.lease_expires_at),
            "created_at": to_iso(self.created_at),
            "completed_at": to_iso(self.completed_at),
        }

    @classmethod
    def from_record(cls, record: dict) -> "DeliveryRecord":
        return cls(
            id=record["id"],
            subscription_id=record["subscription_id"],
            event_name=record["event_name"],
            payload=record.get("payload") or {},
            status=DeliveryStatus(record["status"]),
            attempt=record.get("attempt", 0),
            max_attempts=record.get("max_attempts", 5),
            response_status=record.get("response_status"),
            response_body=record.get("response_body"),
            duration_ms=record.get("duration_ms"),
            next_retry_at=from_iso(record.get("next_retry_at")),
            lease_expires_at=from_iso(record.get("lease_expires_at")),
            created_at=from_iso(record.get("created_at")),
            completed_at=from_iso(record.get("completed_at")),
        )


@dataclass
class DeliveryAttempt:
    attempt_id: str
    delivery_id: str
    attempt_number: int
    url: str
    status_code: int | None
    timestamp: datetime
    response_time_ms: float
    error: str | None = None

    def to_record(self) -> dict:
        return {
            "id": self.attempt_id,
            "delivery_id": self.delivery_id,
            "attempt_number": self.attempt_number,
            "url": self.url,
            "status_code": self.status_code,
            "timestamp": to_iso(self.timestamp),
            "response_time_ms": self.response_time_ms,
            "error": self.error,
        }

    @classmethod
    def from_record(cls, record: dict) -> "DeliveryAttempt":
        return cls(
            attempt_id=record["id"],
            delivery_id=record["delivery_id"],
            attempt_number=record["attempt_number"],
            url=record["url"],
            status_code=record.get("status_code"),
            timestamp=from_iso(record["timestamp"]),
            response_time_ms=record["response_time_ms"],
            error=record.get("error"),
        )


@dataclass
class Page:
    entries: list = field(default_factory=list)
    total: int = 0
