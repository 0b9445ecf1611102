"""
HTTP client for the Articulator gateway.

Streaming endpoints are consumed with ``httpx`` and decoded frame by frame
with the protocol v1 decoder, so callers iterate over StreamEvents.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..core.errors import ChatStreamError, UploadError
from ..core.stream_protocol import EVENT_ERROR, StreamDecoder, StreamEvent

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    file_path: str
    file_name: str
    mime_type: str
    chat_session_id: str


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def _error_details(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("details") if isinstance(body, dict) else None


class ArticulatorClient:
    """
    Async client for upload, analysis, chat and history endpoints.

    Args:
        base_url: Gateway root, e.g. ``http://localhost:8000``
        http_client: Pre-configured httpx client (tests pass one bound to an ASGI app)
        timeout: Request timeout in seconds for a client created here
    """

    def __init__(self, base_url: str = "", http_client: Optional[httpx.AsyncClient] = None, timeout: float = 300.0):
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def __aenter__(self) -> "ArticulatorClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def upload_video(self, data: bytes, mime_type: str = "video/webm") -> UploadResult:
        """
        Upload a finished recording.

        Raises:
            UploadError: The gateway rejected the upload or answered unexpectedly
        """
        extension = "webm" if "webm" in mime_type else "mp4"
        file_name = f"recording_{int(time.time() * 1000)}.{extension}"
        try:
            response = await self.http.post(
                "/upload-video",
                files={"video": (file_name, data, mime_type)},
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Failed to upload video: {e}") from e

        if response.is_error:
            raise UploadError(f"Failed to upload video: {_error_message(response)}", response.status_code)

        try:
            body = response.json()
            result = UploadResult(
                file_path=body["filePath"],
                file_name=body["fileName"],
                mime_type=body["mimeType"],
                chat_session_id=body["chatSessionId"],
            )
        except (ValueError, KeyError, TypeError) as e:
            raise UploadError(f"Unexpected upload response: {e}", response.status_code) from e

        logger.info(f"Video uploaded, chat session {result.chat_session_id}")
        return result

    async def _stream(self, path: str, payload: Dict[str, Any]) -> AsyncGenerator[StreamEvent, None]:
        decoder = StreamDecoder()
        try:
            async with self.http.stream("POST", path, json=payload) as response:
                if response.is_error:
                    await response.aread()
                    raise ChatStreamError(
                        _error_message(response),
                        status_code=response.status_code,
                        details=_error_details(response),
                    )

                async for text in response.aiter_text():
                    for event in decoder.feed(text):
                        yield event
                for event in decoder.close():
                    yield event
        except httpx.HTTPError as e:
            raise ChatStreamError(f"Stream interrupted: {e}") from e
        except ValueError as e:
            raise ChatStreamError(f"Malformed stream: {e}") from e

    def stream_chat(
        self,
        messages: List[Dict[str, str]],
        chat_session_id: str,
        file_path: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Send the conversation to ``/chat`` and yield the reply's events."""
        payload: Dict[str, Any] = {"messages": messages, "chatSessionId": chat_session_id}
        if file_path:
            payload["filePath"] = file_path
        if mime_type:
            payload["mimeType"] = mime_type
        return self._stream("/chat", payload)

    def analyze_video(
        self,
        file_path: str,
        mime_type: Optional[str] = None,
        chat_session_id: Optional[str] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Stream the standalone analysis of a stored recording."""
        payload: Dict[str, Any] = {"filePath": file_path}
        if mime_type:
            payload["mimeType"] = mime_type
        if chat_session_id:
            payload["chatSessionId"] = chat_session_id
        return self._stream("/analyze-video", payload)

    async def collect_text(self, events: AsyncIterator[StreamEvent]) -> str:
        """
        Drain a stream into the full reply text.

        Raises:
            ChatStreamError: The stream ended with an error event
        """
        parts = []
        async for event in events:
            if event.type == EVENT_ERROR:
                raise ChatStreamError(event.payload.get("error", "Stream failed"), details=event.payload.get("details"))
            parts.append(event.text)
        return "".join(parts)

    async def _get_result(self, path: str, failure: str) -> Dict[str, Any]:
        """GET a persistence result, folding transport problems into ``success: false``."""
        try:
            response = await self.http.get(path)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{failure}: {e}")
            return {"success": False, "error": failure}
        if not isinstance(body, dict):
            return {"success": False, "error": failure}
        return body

    async def list_sessions(self) -> Dict[str, Any]:
        return await self._get_result("/chat-sessions", "Failed to load chat sessions")

    async def get_chat_history(self, chat_session_id: str) -> Dict[str, Any]:
        return await self._get_result(
            f"/chat-sessions/{quote(chat_session_id, safe='')}", "Failed to load chat history"
        )

    def playback_url(self, file_path: str) -> str:
        """URL of the video-serving endpoint for a stored recording path."""
        segments = [s for s in file_path.replace("\\", "/").split("/") if s]
        return f"{self.base_url}/video/" + "/".join(quote(s, safe=":") for s in segments)
