"""
Chat Store - persistence gateway for sessions, recordings and messages.

Every operation opens its own short-lived database session, so a store can be
shared between request handlers and the streaming callbacks that outlive them.
Read operations report failures as ``success=False`` results instead of raising.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload, sessionmaker

from ..db.models import ChatSession, Message, Video
from ..llm.base import RemoteFile
from ..models.chat import (
    ChatHistoryResult,
    ChatSessionSummary,
    ChatSessionsResult,
    MessageInfo,
    VideoInfo,
)

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

SESSION_NOT_FOUND = "Chat session not found"


def default_session_title(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"Speech analysis {now.strftime('%Y-%m-%d %H:%M')}"


def _summary(chat_session: ChatSession, message_count: int) -> ChatSessionSummary:
    video = chat_session.video
    return ChatSessionSummary(
        id=chat_session.id,
        title=chat_session.title,
        created_at=chat_session.created_at,
        updated_at=chat_session.updated_at,
        video=VideoInfo.model_validate(video) if video is not None else None,
        message_count=message_count,
    )


class ChatStore:
    """Reads and writes chat sessions in the relational store."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_session_with_video(
        self,
        file_name: str,
        file_path: str,
        mime_type: str,
        title: Optional[str] = None,
    ) -> ChatSession:
        """
        Create a chat session together with the recording it analyzes.

        Args:
            file_name: Stored file name
            file_path: Absolute storage path of the recording
            mime_type: Recording mime type
            title: Session title, defaults to a timestamped one

        Returns:
            The new ChatSession (detached, attributes loaded)
        """
        with self._session_factory() as db:
            chat_session = ChatSession(title=title or default_session_title())
            chat_session.video = Video(file_name=file_name, file_path=file_path, mime_type=mime_type)
            db.add(chat_session)
            db.commit()
            logger.info(
                "Chat session created",
                extra={"extra_fields": {"chat_session_id": chat_session.id, "file_name": file_name}}
            )
            return chat_session

    def get_session(self, chat_session_id: str) -> Optional[ChatSession]:
        with self._session_factory() as db:
            return db.query(ChatSession).options(
                selectinload(ChatSession.video)
            ).filter(ChatSession.id == chat_session_id).first()

    def set_remote_file(self, chat_session_id: str, remote_file: RemoteFile) -> None:
        """Remember the provider handle of a session's recording for follow-up turns."""
        with self._session_factory() as db:
            video = db.query(Video).filter(Video.chat_session_id == chat_session_id).first()
            if video is None:
                return
            video.remote_file_name = remote_file.name
            video.remote_file_uri = remote_file.uri
            db.commit()

    def add_message(self, chat_session_id: str, role: str, content: str) -> Message:
        """
        Append a message to a session and bump the session's update time.

        Raises:
            LookupError: If the session does not exist
        """
        with self._session_factory() as db:
            chat_session = db.get(ChatSession, chat_session_id)
            if chat_session is None:
                raise LookupError(f"Chat session not found: {chat_session_id}")

            max_order = db.query(func.max(Message.message_order)).filter(
                Message.chat_session_id == chat_session_id
            ).scalar() or 0

            message = Message(
                chat_session_id=chat_session_id,
                role=role,
                content=content,
                message_order=max_order + 1,
            )
            db.add(message)
            chat_session.updated_at = datetime.now(timezone.utc)
            db.commit()
            return message

    def add_user_message(self, chat_session_id: str, content: str) -> Message:
        """
        Append a user turn.

        Re-sending the newest user turn while it is still unanswered returns
        the stored message instead of appending a duplicate.
        """
        with self._session_factory() as db:
            last = db.query(Message).filter(
                Message.chat_session_id == chat_session_id
            ).order_by(Message.message_order.desc()).first()
        if last is not None and last.role == ROLE_USER and last.content == content:
            return last
        return self.add_message(chat_session_id, ROLE_USER, content)

    def add_assistant_message(self, chat_session_id: str, content: str) -> Message:
        return self.add_message(chat_session_id, ROLE_ASSISTANT, content)

    def count_messages(self, chat_session_id: str) -> int:
        with self._session_factory() as db:
            return db.query(func.count(Message.id)).filter(
                Message.chat_session_id == chat_session_id
            ).scalar() or 0

    def list_sessions(self) -> ChatSessionsResult:
        """All sessions with their recording and message count, most recently updated first."""
        try:
            with self._session_factory() as db:
                rows = db.query(
                    ChatSession,
                    func.count(Message.id).label("message_count"),
                ).outerjoin(
                    Message, ChatSession.id == Message.chat_session_id
                ).options(
                    selectinload(ChatSession.video)
                ).group_by(ChatSession.id).order_by(ChatSession.updated_at.desc()).all()

                return ChatSessionsResult(
                    success=True,
                    chat_sessions=[_summary(row.ChatSession, row.message_count) for row in rows],
                )
        except SQLAlchemyError as e:
            logger.error(f"Error loading chat sessions: {e}", exc_info=True)
            return ChatSessionsResult(success=False, error="Failed to load chat sessions")

    def get_chat_history(self, chat_session_id: str) -> ChatHistoryResult:
        """One session's messages in creation order, plus its recording."""
        try:
            with self._session_factory() as db:
                chat_session = db.query(ChatSession).options(
                    selectinload(ChatSession.video)
                ).filter(ChatSession.id == chat_session_id).first()
                if chat_session is None:
                    return ChatHistoryResult(success=False, error=SESSION_NOT_FOUND)

                messages = db.query(Message).filter(
                    Message.chat_session_id == chat_session_id
                ).order_by(Message.created_at.asc(), Message.message_order.asc()).all()

                return ChatHistoryResult(
                    success=True,
                    chat_session=_summary(chat_session, len(messages)),
                    messages=[MessageInfo.model_validate(m) for m in messages],
                )
        except SQLAlchemyError as e:
            logger.error(f"Error loading chat history for {chat_session_id}: {e}", exc_info=True)
            return ChatHistoryResult(success=False, error="Failed to load chat history")
