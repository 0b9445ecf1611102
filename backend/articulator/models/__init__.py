"""Models module."""

from .chat import (
    AnalyzeVideoRequest,
    ChatHistoryResult,
    ChatMessageIn,
    ChatRequest,
    ChatSessionSummary,
    ChatSessionsResult,
    ErrorResponse,
    MessageInfo,
    UploadVideoResponse,
    VideoInfo,
)

__all__ = [
    'AnalyzeVideoRequest',
    'ChatHistoryResult',
    'ChatMessageIn',
    'ChatRequest',
    'ChatSessionSummary',
    'ChatSessionsResult',
    'ErrorResponse',
    'MessageInfo',
    'UploadVideoResponse',
    'VideoInfo',
]
