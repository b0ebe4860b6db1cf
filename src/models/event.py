from dataclasses import dataclass, field
from enum import Enum

from src.errors import UnknownEventError


WILDCARD = "*"


class EventName(str, Enum):
    CONTACT_CREATED = "contact_created"
    DEAL_CREATED = "deal_created"
    DEAL_STAGE_CHANGED = "deal_stage_changed"
    MESSAGE_RECEIVED = "message_received"
    TAG_ADDED = "tag_added"
    TASK_COMPLETED = "task_completed"
    CONVERSATION_CREATED = "conversation_created"

    @classmethod
    def parse(cls, name: "str | EventName") -> "EventName":
        """Resolve a name to a catalogue member, failing fast on anything else."""
        try:
            return cls(name)
        except ValueError:
            raise UnknownEventError(f"Unknown event name: {name!r}") from None


@dataclass
class Event:
    name: EventName
    payload: dict = field(default_factory=dict)
