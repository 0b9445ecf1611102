"""
Streaming wire protocol between the analysis gateway and its clients.

The response body is ``text/event-stream``. Every event is a single frame::

    data: {"v": 1, "type": "<event type>", ...payload}\\n\\n

Event types, in the order a well-formed stream produces them:

- ``start``  ``{"messageId": str}`` - always first
- ``delta``  ``{"text": str}`` - zero or more incremental text fragments
- ``finish`` ``{"finishReason": str, "usage": {...}}`` - successful end
- ``error``  ``{"error": str, "details": str, "timestamp": str}`` - failed end

Exactly one of ``finish`` or ``error`` terminates a stream. Bump
``PROTOCOL_VERSION`` whenever a payload changes incompatibly.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PROTOCOL_VERSION = 1
MEDIA_TYPE = "text/event-stream"

EVENT_START = "start"
EVENT_DELTA = "delta"
EVENT_FINISH = "finish"
EVENT_ERROR = "error"

EVENT_TYPES = (EVENT_START, EVENT_DELTA, EVENT_FINISH, EVENT_ERROR)
TERMINAL_EVENTS = (EVENT_FINISH, EVENT_ERROR)


@dataclass
class StreamEvent:
    """One decoded protocol frame."""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.payload.get("text", "")

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS


def encode_event(event_type: str, **payload: Any) -> str:
    """
    Serialize one event as a protocol frame.

    Args:
        event_type: One of ``EVENT_TYPES``
        **payload: Event fields

    Returns:
        The frame text, terminated by a blank line
    """
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown stream event type: {event_type}")
    frame = {"v": PROTOCOL_VERSION, "type": event_type, **payload}
    return f"data: {json.dumps(frame, ensure_ascii=False)}\n\n"


def encode_error(error: str, details: str = "") -> str:
    """Serialize a terminal ``error`` event stamped with the current UTC time."""
    return encode_event(
        EVENT_ERROR,
        error=error,
        details=details,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


class StreamDecoder:
    """
    Incremental decoder for protocol frames.

    Network chunks may split a frame anywhere, so text is buffered until a
    blank line closes the frame.
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> List[StreamEvent]:
        """Add received text and return every frame it completed."""
        self._buffer += chunk.replace("\r\n", "\n")
        events: List[StreamEvent] = []
        while "\n\n" in self._buffer:
            frame, self._buffer = self._buffer.split("\n\n", 1)
            event = self._parse_frame(frame)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> List[StreamEvent]:
        """Flush a final frame that arrived without its trailing blank line."""
        remainder, self._buffer = self._buffer, ""
        event = self._parse_frame(remainder)
        return [event] if event is not None else []

    @staticmethod
    def _parse_frame(frame: str) -> Optional[StreamEvent]:
        data_lines = [
            line[len("data:"):].lstrip()
            for line in frame.split("\n")
            if line.startswith("data:")
        ]
        if not data_lines:
            return None

        try:
            body = json.loads("\n".join(data_lines))
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed stream frame: {e}") from e

        if not isinstance(body, dict):
            raise ValueError("Stream frame is not a JSON object")
        version = body.pop("v", None)
        if version != PROTOCOL_VERSION:
            raise ValueError(f"Unsupported stream protocol version: {version}")
        event_type = body.pop("type", None)
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown stream event type: {event_type}")
        return StreamEvent(type=event_type, payload=body)
