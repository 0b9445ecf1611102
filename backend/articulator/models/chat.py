"""
Chat Models - Request and response bodies of the analysis and history endpoints.
Field names are camelCase on the wire, snake_case in Python.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ChatMessageIn(CamelModel):
    """One message of the conversation sent by the client."""
    id: Optional[str] = None
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(CamelModel):
    """Body of ``POST /chat``."""
    messages: List[ChatMessageIn] = Field(..., min_length=1)
    chat_session_id: str = Field(..., min_length=1)
    file_path: Optional[str] = None
    mime_type: Optional[str] = None


class AnalyzeVideoRequest(CamelModel):
    """Body of ``POST /analyze-video``."""
    file_path: str = Field(..., min_length=1)
    mime_type: Optional[str] = None
    chat_session_id: Optional[str] = None


class UploadVideoResponse(CamelModel):
    success: bool = True
    file_path: str
    file_name: str
    mime_type: str
    chat_session_id: str


class VideoInfo(CamelModel):
    id: str
    file_name: str
    file_path: str
    mime_type: str
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageInfo(CamelModel):
    id: str
    role: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatSessionSummary(CamelModel):
    id: str
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    video: Optional[VideoInfo] = None
    message_count: int = 0


class ChatSessionsResult(CamelModel):
    """Outcome of listing sessions; ``error`` is set when ``success`` is False."""
    success: bool
    chat_sessions: List[ChatSessionSummary] = []
    error: Optional[str] = None


class ChatHistoryResult(CamelModel):
    """Outcome of loading one session's history."""
    success: bool
    chat_session: Optional[ChatSessionSummary] = None
    messages: List[MessageInfo] = []
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body returned by the analysis endpoints."""
    error: str
    details: Optional[str] = None
    timestamp: datetime
    kind: Optional[str] = None
