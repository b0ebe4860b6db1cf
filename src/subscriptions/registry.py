import logging
import secrets
from urllib.parse import urlparse

from src.errors import InvalidSubscriptionError
from src.models.delivery import Page
from src.models.event import WILDCARD, EventName
from src.models.subscription import Subscription
from src.store.record_store import RecordStore

logger = logging.getLogger(__name__)

COLLECTION = "webhooks"

_UPDATABLE = {"target_url", "secret", "events", "active", "description"}


def _validate_url(url: str) -> str:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidSubscriptionError(f"target_url must be an http(s) URL, got {url!r}")
    return url


def _validate_events(events) -> list[str]:
    if isinstance(events, str) or not events:
        raise InvalidSubscriptionError("events must be a non-empty list of event names")
    normalized = []
    for name in events:
        if name == WILDCARD:
            normalized.append(WILDCARD)
        else:
            try:
                normalized.append(EventName(name).value)
            except ValueError:
                raise InvalidSubscriptionError(f"Unknown event name: {name!r}") from None
    return list(dict.fromkeys(normalized))


class SubscriptionRegistry:
    """Reads and manages webhook subscriptions held in the record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    def create(
        self,
        target_url: str,
        events: list[str],
        secret: str | None = None,
        description: str | None = None,
        active: bool = True,
    ) -> Subscription:
        record = self.store.insert(COLLECTION, {
            "target_url": _validate_url(target_url),
            "events": _validate_events(events),
            "secret": secret or secrets.token_hex(32),
            "description": description,
            "active": bool(active),
        })
        logger.info("Created webhook %s -> %s for %s", record["id"], target_url, record["events"])
        return Subscription.from_record(record)

    def update(self, subscription_id: str, **changes) -> Subscription | None:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise InvalidSubscriptionError(f"Cannot update fields: {sorted(unknown)}")

        data = {k: v for k, v in changes.items() if v is not None or k == "description"}
        if "target_url" in data:
            _validate_url(data["target_url"])
        if "events" in data:
            data["events"] = _validate_events(data["events"])
        if "secret" in data and not data["secret"]:
            raise InvalidSubscriptionError("secret must not be empty")
        if "active" in data:
            data["active"] = bool(data["active"])

        record = self.store.update(COLLECTION, subscription_id, data)
        if record is None:
            return None
        return Subscription.from_record(record)

    def delete(self, subscription_id: str) -> Subscription | None:
        """Remove a subscription. Its delivery history is left in place."""
        record = self.store.delete(COLLECTION, subscription_id)
        if record is None:
            return None
        logger.info("Deleted webhook %s", subscription_id)
        return Subscription.from_record(record)

    def get(self, subscription_id: str) -> Subscription | None:
        record = self.store.get(COLLECTION, subscription_id)
        return Subscription.from_record(record) if record else None

    def list_subscriptions(
        self,
        active: bool | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page:
        needle = search.lower() if search else None

        def predicate(r: dict) -> bool:
            if active is not None and r.get("active") != active:
                return False
            if needle and needle not in (r.get("target_url") or "").lower():
                return False
            return True

        records = sorted(
            self.store.find(COLLECTION, predicate),
            key=lambda r: r.get("created_at") or "",
            reverse=True,
        )
        return Page(
            entries=[Subscription.from_record(r) for r in records[offset:offset + limit]],
            total=len(records),
        )

    def active_for_event(self, event_name: str | EventName) -> list[Subscription]:
        """All active subscriptions listening to ``event_name`` or the wildcard."""
        name = EventName.parse(event_name).value
        records = self.store.find(COLLECTION, lambda r: r.get("active") is True)
        subscriptions = [Subscription.from_record(r) for r in records]
        return [s for s in subscriptions if s.listens_to(name)]
