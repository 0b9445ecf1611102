"""
Database models - chat sessions, their recording and their messages.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, index=True)

    video = relationship("Video", back_populates="chat_session", uselist=False, cascade="all, delete-orphan")
    messages = relationship(
        "Message",
        back_populates="chat_session",
        cascade="all, delete-orphan",
        order_by="Message.message_order",
    )


class Video(Base):
    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, default=_new_id)
    # unique: a session has at most one recording
    chat_session_id = Column(
        String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    file_name = Column(String(255), nullable=False)
    file_path = Column(Text, nullable=False)
    mime_type = Column(String(100), nullable=False)
    uploaded_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Provider handle, filled in once the recording has been ingested
    remote_file_name = Column(String(255), nullable=True)
    remote_file_uri = Column(Text, nullable=True)

    chat_session = relationship("ChatSession", back_populates="video")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_new_id)
    chat_session_id = Column(
        String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    role = Column(String(20), nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    message_order = Column(Integer, nullable=False)

    chat_session = relationship("ChatSession", back_populates="messages")
