"""Relational persistence for sessions, videos and messages."""

from .database import Base, create_db_engine, create_session_factory, init_db
from .models import ChatSession, Message, Video

__all__ = [
    'Base',
    'create_db_engine',
    'create_session_factory',
    'init_db',
    'ChatSession',
    'Message',
    'Video',
]
