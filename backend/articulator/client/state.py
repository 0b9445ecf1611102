"""
Application state container for the recording client.

One ``AppState`` per client (or per test). It is passed explicitly to the
orchestrator rather than living in a module-level singleton.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .preferences import DevicePreferenceStore
from .recorder import RecordingState, RecordingStateMachine


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Attachment:
    """A file carried by a user turn, referenced by its stored path."""
    name: str
    content_type: str
    file_path: str


@dataclass
class ChatMessage:
    role: str
    content: str
    created_at: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attachments: List[Attachment] = field(default_factory=list)

    def to_wire(self) -> dict:
        return {"id": self.id, "role": self.role, "content": self.content}


@dataclass
class AppState:
    """Everything the UI renders: recording state, transcript and session."""

    preferences: DevicePreferenceStore = field(default_factory=DevicePreferenceStore)
    recording: RecordingStateMachine = field(default_factory=RecordingStateMachine)
    messages: List[ChatMessage] = field(default_factory=list)
    chat_session_id: Optional[str] = None
    has_analyzed_video: bool = False
    is_loading: bool = False
    show_chat: bool = True
    show_preview: bool = True
    video_url: str = ""
    last_error: Optional[str] = None

    @property
    def recording_state(self) -> RecordingState:
        return self.recording.state

    def clear_conversation(self) -> None:
        """Forget the transcript and session, as when a new recording starts."""
        self.messages = []
        self.chat_session_id = None
        self.has_analyzed_video = False

    def reset_global_state(self) -> None:
        self.clear_conversation()
        self.video_url = ""
        self.show_chat = True
        self.show_preview = True
        self.is_loading = False
        self.last_error = None
