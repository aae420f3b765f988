"""
Query stream wire format.

The server writes one event per ``data: <json>`` line, separated by blank
lines, and ends the stream with ``data: [DONE]``. The ``type`` field of each
JSON object selects its handling on the client.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class EventType(str, Enum):
    THINKING = "thinking"
    CHUNK = "chunk"
    SOURCES = "sources"
    REASONING_STEP = "reasoning-step"
    TOOL_CALL = "tool-call"
    KNOWLEDGE_GRAPH = "knowledge_graph"
    METADATA = "metadata"
    DONE = "done"
    ERROR = "error"


# Older producers used these names
EVENT_ALIASES = {
    "reasoning": EventType.REASONING_STEP,
    "reasoning_step": EventType.REASONING_STEP,
    "tool": EventType.TOOL_CALL,
    "tool_call": EventType.TOOL_CALL,
}


def parse_event_type(value: Any) -> Optional[EventType]:
    if not isinstance(value, str):
        return None
    if value in EVENT_ALIASES:
        return EVENT_ALIASES[value]
    try:
        return EventType(value)
    except ValueError:
        return None


@dataclass
class StreamEvent:
    """One decoded stream event; ``data`` is the JSON object minus ``type``."""

    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, **self.data}


def encode_frame(event: StreamEvent) -> str:
    """Serialize an event as one server-sent-event frame."""
    if event.type is EventType.DONE:
        return f"{DATA_PREFIX} {DONE_SENTINEL}\n\n"
    return f"{DATA_PREFIX} {json.dumps(event.to_dict(), default=str)}\n\n"


def frame(event_type: EventType, **data: Any) -> str:
    return encode_frame(StreamEvent(type=event_type, data=data))
