import uuid
from datetime import datetime, timezone

from src.models.event import Event, EventName
from src.models.subscription import Subscription


class SubscriptionFactory:
    """Factory for creating Subscription instances with sensible defaults."""

    @staticmethod
    def build(**overrides) -> Subscription:
        now = datetime.now(timezone.utc)
        defaults = {
            "id": f"wh_{uuid.uuid4().hex[:16]}",
            "target_url": "http://127.0.0.1:9/webhook",
            "secret": uuid.uuid4().hex,
            "events": [EventName.DEAL_CREATED.value],
            "active": True,
            "description": None,
            "created_at": now,
            "updated_at": now,
        }
        defaults.update(overrides)
        return Subscription(**defaults)


class EventFactory:
    """Factory for creating domain events with realistic payloads."""

    @staticmethod
    def create_event(name: str | EventName = EventName.DEAL_CREATED, **overrides) -> Event:
        event = EventName.parse(name)
        payload = EventFactory._build_payload(event, **overrides)
        payload_overrides = overrides.pop("payload", None)
        if payload_overrides:
            payload.update(payload_overrides)
        return Event(name=event, payload=payload)

    @staticmethod
    def _build_payload(event: EventName, **kwargs) -> dict:
        entity_id = kwargs.get("entity_id", uuid.uuid4().hex[:12])

        if event == EventName.CONTACT_CREATED:
            return {
                "contactId": entity_id,
                "contact": {"id": entity_id, "firstName": kwargs.get("first_name", "Ada")},
            }
        if event == EventName.DEAL_CREATED:
            return {
                "dealId": entity_id,
                "deal": {"id": entity_id, "title": kwargs.get("title", "New deal"), "value": 1000},
            }
        if event == EventName.DEAL_STAGE_CHANGED:
            return {
                "dealId": entity_id,
                "deal": {"id": entity_id},
                "previousStageId": kwargs.get("previous_stage_id"),
                "newStageId": kwargs.get("new_stage_id", "stage_won"),
                "stageName": kwargs.get("stage_name", "Won"),
            }
        if event == EventName.MESSAGE_RECEIVED:
            return {
                "messageId": entity_id,
                "conversationId": kwargs.get("conversation_id", "conv_1"),
                "contactId": kwargs.get("contact_id", "contact_1"),
                "message": {"id": entity_id, "text": kwargs.get("text", "Hello")},
            }
        if event == EventName.TAG_ADDED:
            return {
                "contactId": entity_id,
                "tagIds": kwargs.get("tag_ids", ["tag_vip"]),
                "contact": {"id": entity_id},
            }
        if event == EventName.TASK_COMPLETED:
            return {"taskId": entity_id, "task": {"id": entity_id, "status": "completed"}}
        return {
            "conversationId": entity_id,
            "contactId": kwargs.get("contact_id", "contact_1"),
            "conversation": {"id": entity_id, "channel": kwargs.get("channel", "web")},
        }
