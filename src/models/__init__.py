from .event import Event, EventName, WILDCARD
from .subscription import Subscription
from .delivery import DeliveryAttempt, DeliveryRecord, DeliveryStatus, Page

__all__ = [
    "Event", "EventName", "WILDCARD",
    "Subscription",
    "DeliveryAttempt", "DeliveryRecord", "DeliveryStatus", "Page",
]
