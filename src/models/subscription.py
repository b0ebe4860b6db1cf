from dataclasses import dataclass, field
from datetime import datetime

from src.models.event import WILDCARD
from src.utils.clock import from_iso, to_iso


@dataclass
class Subscription:
    id: str
    target_url: str
    secret: str
    events: list[str] = field(default_factory=list)
    active: bool = True
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def listens_to(self, event_name: str) -> bool:
        return event_name in self.events or WILDCARD in self.events

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "target_url": self.target_url,
            "secret": self.secret,
            "events": list(self.events),
            "active": self.active,
            "description": self.description,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, record: dict) -> "Subscription":
        return cls(
            id=record["id"],
            target_url=record["target_url"],
            secret=record["secret"],
            events=list(record.get("events") or []),
            active=bool(record.get("active", True)),
            description=record.get("description"),
            created_at=from_iso(record.get("created_at")),
            updated_at=from_iso(record.get("updated_at")),
        )
