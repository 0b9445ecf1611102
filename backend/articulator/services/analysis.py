"""
Analysis Service - bridges stored recordings to the provider and streams replies.

The assistant reply is assembled while it streams and persisted once the
provider finishes, before the terminal ``finish`` event is sent. A client
that disconnects early does not stop generation or persistence. Saving is
best effort: a failure is logged and the client still receives its stream.
"""

import asyncio
import logging
import math
import uuid
from typing import AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from .chat_store import ChatStore
from .file_ingestion import RetryPolicy, ingest_file
from ..core.errors import ProviderError
from ..core.logging_config import SessionLoggerAdapter
from ..core.stream_protocol import EVENT_DELTA, EVENT_FINISH, EVENT_START, encode_error, encode_event
from ..llm.base import FILE_STATE_ACTIVE, LLMMessage, LLMProvider, RemoteFile
from ..models.chat import ChatMessageIn

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "video/webm"


def estimate_usage(prompt_chars: int, completion_chars: int) -> Dict[str, int]:
    """Rough token counts (four characters per token) for providers that report none."""
    prompt_tokens = math.ceil(prompt_chars / 4)
    completion_tokens = math.ceil(completion_chars / 4)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def build_llm_messages(
    history: List[ChatMessageIn],
    remote_file: Optional[RemoteFile] = None,
    attach_to_latest: bool = True,
) -> List[LLMMessage]:
    """
    Convert client messages to provider messages, attaching the recording.

    Args:
        history: Conversation as sent by the client, oldest first
        remote_file: Ingested recording to attach, if any
        attach_to_latest: Attach to the newest user turn (fresh upload) rather
            than the first one (follow-up turns of an analyzed session)

    Returns:
        List of LLMMessage in the same order
    """
    messages = [LLMMessage.text(m.role, m.content) for m in history]
    if remote_file is None or not remote_file.uri:
        return messages

    user_indexes = [i for i, m in enumerate(messages) if m.role == "user"]
    if not user_indexes:
        return messages

    index = user_indexes[-1] if attach_to_latest else user_indexes[0]
    target = messages[index]
    messages[index] = LLMMessage.with_file(target.role, target.plain_text, remote_file.uri, remote_file.mime_type)
    return messages


class AnalysisService:
    """
    Runs provider ingestion and streamed completions for the HTTP endpoints.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider],
        chat_store: ChatStore,
        retry_policy: RetryPolicy,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.chat_store = chat_store
        self.retry_policy = retry_policy
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._sleep = sleep
        self._pending: Set[asyncio.Task] = set()

    def _require_provider(self) -> LLMProvider:
        if self.provider is None:
            raise ProviderError("LLM provider is not configured. Set LLM_API_KEY to enable analysis.")
        return self.provider

    async def ingest(self, file_path: str, mime_type: Optional[str] = None) -> RemoteFile:
        """Upload a stored recording to the provider and wait until it is ACTIVE."""
        provider = self._require_provider()
        return await ingest_file(
            provider, file_path, mime_type or DEFAULT_MIME_TYPE, self.retry_policy, sleep=self._sleep
        )

    @staticmethod
    def remembered_file(video) -> Optional[RemoteFile]:
        """Provider handle stored on a session's Video row, if it was ingested before."""
        if video is None or not video.remote_file_uri:
            return None
        return RemoteFile(
            name=video.remote_file_name or "",
            state=FILE_STATE_ACTIVE,
            mime_type=video.mime_type,
            uri=video.remote_file_uri,
        )

    async def _persist_reply(self, chat_session_id: str, content: str, log: logging.LoggerAdapter) -> None:
        if not content:
            log.warning("Assistant reply was empty, nothing persisted")
            return
        try:
            await run_in_threadpool(self.chat_store.add_assistant_message, chat_session_id, content)
            log.info(f"Assistant message persisted ({len(content)} chars)")
        except (SQLAlchemyError, LookupError) as e:
            log.error(f"Failed to persist assistant message: {e}", exc_info=True)

    async def wait_for_pending(self) -> None:
        """Let replies still being generated for disconnected clients finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def stream_reply(
        self,
        messages: List[LLMMessage],
        system_prompt: str,
        chat_session_id: Optional[str] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream the model's reply as protocol frames.

        The provider is read by a separate task, so the reply is still
        assembled and persisted when the client goes away mid-stream.

        Args:
            messages: Conversation for the provider
            system_prompt: Coaching instructions
            chat_session_id: Session to persist the finished reply against

        Yields:
            str: ``start``, ``delta``..., then ``finish`` or ``error`` frames
        """
        frames: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        task = asyncio.create_task(self._produce_reply(messages, system_prompt, chat_session_id, frames))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        while True:
            frame = await frames.get()
            if frame is None:
                return
            yield frame

    async def _produce_reply(
        self,
        messages: List[LLMMessage],
        system_prompt: str,
        chat_session_id: Optional[str],
        frames: "asyncio.Queue[Optional[str]]",
    ) -> None:
        log = SessionLoggerAdapter(logger, {"chat_session_id": chat_session_id})
        try:
            await self._generate(messages, system_prompt, chat_session_id, frames.put_nowait, log)
        finally:
            # End-of-stream marker
            frames.put_nowait(None)

    async def _generate(
        self,
        messages: List[LLMMessage],
        system_prompt: str,
        chat_session_id: Optional[str],
        emit: Callable[[str], None],
        log: logging.LoggerAdapter,
    ) -> None:
        emit(encode_event(EVENT_START, messageId=f"msg-{uuid.uuid4().hex[:16]}"))

        parts: List[str] = []
        finish_reason = "stop"
        usage: Dict[str, int] = {}

        try:
            provider = self._require_provider()
            async for chunk in provider.chat_completion_stream(
                messages,
                system_prompt=system_prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            ):
                if chunk.text:
                    parts.append(chunk.text)
                    emit(encode_event(EVENT_DELTA, text=chunk.text))
                if chunk.finish_reason:
                    finish_reason = chunk.finish_reason
                    usage = chunk.usage
        except Exception as e:
            log.error(f"Streaming error: {e}", exc_info=True)
            emit(encode_error("Error processing chat request", str(e)))
            return

        content = "".join(parts)
        if chat_session_id:
            await self._persist_reply(chat_session_id, content, log)

        if not usage:
            prompt_chars = len(system_prompt) + sum(len(m.plain_text) for m in messages)
            usage = estimate_usage(prompt_chars, len(content))

        emit(encode_event(
            EVENT_FINISH,
            finishReason=finish_reason,
            usage={
                "promptTokens": usage.get("prompt_tokens", 0),
                "completionTokens": usage.get("completion_tokens", 0),
                "totalTokens": usage.get("total_tokens", 0),
            },
        ))
