import json
from datetime import datetime

from src.utils.clock import wire_timestamp
from src.utils.crypto import generate_signature


SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_HEADER = "X-Webhook-Delivery"


def build_body(event_name: str, payload: dict, timestamp: datetime) -> bytes:
    """Serialize the outbound envelope. Same input always yields the same bytes."""
    envelope = {
        "event": event_name,
        "payload": payload,
        "timestamp": wire_timestamp(timestamp),
    }
    return json.dumps(
        envelope, sort_keys=True, separators=(",", ":"), default=str,
    ).encode("utf-8")


def sign(body: bytes, secret: str) -> str:
    return generate_signature(body, secret)


def build_headers(body: bytes, secret: str, event_name: str, delivery_id: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: sign(body, secret),
        EVENT_HEADER: event_name,
        DELIVERY_HEADER: delivery_id,
    }
