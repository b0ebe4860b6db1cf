from src.models.delivery import DeliveryAttempt
from src.store.record_store import RecordStore

COLLECTION = "webhook_delivery_attempts"


class DeliveryLogger:
    """Durable per-attempt history, one row for each HTTP attempt."""

    def __init__(self, store: RecordStore):
        self.store = store

    def log(self, attempt: DeliveryAttempt) -> None:
        self.store.insert(COLLECTION, attempt.to_record())

    def get_attempts(self, delivery_id: str | None = None) -> list[DeliveryAttempt]:
        if delivery_id is None:
            records = self.store.find(COLLECTION)
        else:
            records = self.store.find(COLLECTION, lambda r: r.get("delivery_id") == delivery_id)
        attempts = [DeliveryAttempt.from_record(r) for r in records]
        return sorted(attempts, key=lambda a: (a.timestamp, a.attempt_number))

    def get_failed_attempts(self) -> list[DeliveryAttempt]:
        return [
            a for a in self.get_attempts()
            if a.status_code is None or not 200 <= a.status_code < 300
        ]
