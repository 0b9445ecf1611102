"""API module."""

from .chat import router as chat_router
from .sessions import router as sessions_router
from .video import router as video_router

__all__ = ['chat_router', 'sessions_router', 'video_router']
