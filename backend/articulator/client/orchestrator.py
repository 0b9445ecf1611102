"""
Session orchestrator - record, stop, analyze and chat.

Coordinates the capture adapter, the recorder and the gateway client over a
shared ``AppState``. Every failure rolls the recording state back to a
stable state (``stopped`` or ``idle``); nothing is left in ``uploading`` or
``processing``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .api import ArticulatorClient
from .devices import DeviceLists, MediaCaptureAdapter
from .recorder import MediaRecorderBackend, Recorder, RecordingState
from .state import AppState, Attachment, ChatMessage
from ..core.errors import ChatStreamError, UploadError
from ..core.stream_protocol import EVENT_DELTA, EVENT_ERROR, EVENT_FINISH, EVENT_START

logger = logging.getLogger(__name__)

ANALYSIS_USER_MESSAGE = (
    "Please analyze my speech from the video I just uploaded "
    "and provide detailed feedback on my articulation skills."
)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SessionOrchestrator:
    """
    Client-side coordinator of one recording/analysis session at a time.

    Args:
        state: Application state rendered by the UI
        capture: Owner of the live camera/microphone stream
        recorder_backend: Platform recorder used for every recording
        api: Gateway client
        tick_interval: Seconds between elapsed-time ticks
    """

    def __init__(
        self,
        state: AppState,
        capture: MediaCaptureAdapter,
        recorder_backend: MediaRecorderBackend,
        api: ArticulatorClient,
        tick_interval: float = 1.0,
    ):
        self.state = state
        self.capture = capture
        self.api = api
        self.recorder = Recorder(recorder_backend, machine=state.recording, tick_interval=tick_interval)
        # Bumped by reset and load_session; in-flight work from an older
        # generation must not touch state.
        self._generation = 0

    @property
    def has_permissions(self) -> bool:
        return self.capture.has_permissions

    async def initialize(self) -> bool:
        """Open the live preview with the remembered devices."""
        ok = await self.capture.initialize()
        self.state.show_preview = True
        if not ok:
            self.state.last_error = "Camera and microphone access is required"
        return ok

    async def list_devices(self) -> DeviceLists:
        return await self.capture.list_devices()

    async def switch_devices(self, video_device_id: Optional[str], audio_device_id: Optional[str]) -> bool:
        return await self.capture.switch_devices(video_device_id, audio_device_id)

    async def start_recording(self) -> bool:
        """Start a fresh recording; does nothing unless idle with a live stream."""
        if not await self.recorder.start(self.capture.stream):
            return False
        self.state.clear_conversation()
        self.state.show_chat = False
        self.state.last_error = None
        return True

    async def stop_recording(self) -> bool:
        recorded = await self.recorder.stop()
        if recorded is None:
            return False
        self.state.show_preview = False
        return True

    async def analyze(self) -> bool:
        """
        Upload the finished recording and stream its analysis into the chat.

        Returns:
            True if the analysis reply streamed to completion
        """
        recorded = self.recorder.recorded
        machine = self.state.recording
        if machine.state is not RecordingState.STOPPED or recorded is None or recorded.size == 0:
            return False

        generation = self._generation
        machine.transition(RecordingState.UPLOADING)
        try:
            upload = await self.api.upload_video(recorded.data, recorded.mime_type)
        except UploadError as e:
            logger.error(f"Error analyzing video: {e}")
            if generation == self._generation:
                self.state.last_error = str(e)
                machine.transition(RecordingState.STOPPED)
            return False

        if generation != self._generation:
            logger.info("Upload finished after reset, result discarded")
            return False

        machine.transition(RecordingState.PROCESSING)
        self.state.chat_session_id = upload.chat_session_id
        self.state.has_analyzed_video = True
        self.state.show_chat = True
        self.state.video_url = self.api.playback_url(upload.file_path)

        attachment = Attachment(name=upload.file_name, content_type=upload.mime_type, file_path=upload.file_path)
        try:
            return await self._send(ANALYSIS_USER_MESSAGE, attachment)
        finally:
            if generation == self._generation and machine.state is RecordingState.PROCESSING:
                machine.transition(RecordingState.STOPPED)

    async def send_message(self, content: str) -> bool:
        """Send a follow-up question about the analyzed recording."""
        content = content.strip()
        if not content or not self.state.chat_session_id or self.state.is_loading:
            return False
        return await self._send(content)

    async def _send(self, content: str, attachment: Optional[Attachment] = None) -> bool:
        generation = self._generation
        state = self.state
        user_message = ChatMessage(role="user", content=content, attachments=[attachment] if attachment else [])
        state.messages.append(user_message)
        wire = [m.to_wire() for m in state.messages]

        state.is_loading = True
        reply: Optional[ChatMessage] = None
        finished = False
        events = self.api.stream_chat(
            wire,
            state.chat_session_id,
            file_path=attachment.file_path if attachment else None,
            mime_type=attachment.content_type if attachment else None,
        )
        try:
            async for event in events:
                if generation != self._generation:
                    logger.info("Reply abandoned by reset")
                    return False

                if event.type == EVENT_START:
                    reply = ChatMessage(role="assistant", content="")
                    if event.payload.get("messageId"):
                        reply.id = event.payload["messageId"]
                    state.messages.append(reply)
                elif event.type == EVENT_DELTA:
                    if reply is None:
                        reply = ChatMessage(role="assistant", content="")
                        state.messages.append(reply)
                    reply.content += event.text
                elif event.type == EVENT_ERROR:
                    state.last_error = event.payload.get("error", "Error processing chat request")
                    logger.error(f"Chat stream failed: {event.payload.get('details', '')}")
                    return False
                elif event.type == EVENT_FINISH:
                    logger.info(
                        "Chat reply finished",
                        extra={"extra_fields": {
                            "finish_reason": event.payload.get("finishReason"),
                            "usage": event.payload.get("usage"),
                        }}
                    )
                    finished = True
                    return True
            return False
        except ChatStreamError as e:
            logger.error(f"Error sending message: {e}")
            if generation == self._generation:
                state.last_error = str(e)
            return False
        finally:
            await events.aclose()
            if generation == self._generation:
                state.is_loading = False
                if not finished:
                    # Unanswered turns are not resent on retry
                    state.messages = [m for m in state.messages if m is not user_message and m is not reply]

    async def reset(self) -> None:
        """Drop the recording and the conversation, then restart the live preview."""
        self._generation += 1
        await self.recorder.discard()
        self.state.recording.reset()
        self.state.reset_global_state()
        await self.capture.initialize()

    async def list_sessions(self) -> Dict[str, Any]:
        return await self.api.list_sessions()

    async def load_session(self, chat_session_id: str) -> bool:
        """
        Replace the conversation with a persisted session.

        When the session has a stored recording, playback switches to it and
        the recording state becomes ``stopped``.
        """
        result = await self.api.get_chat_history(chat_session_id)
        if not result.get("success"):
            self.state.last_error = result.get("error") or "Failed to load chat history"
            return False

        self._generation += 1
        await self.recorder.discard()
        machine = self.state.recording
        if machine.state not in (RecordingState.IDLE, RecordingState.STOPPED):
            machine.reset()

        messages: List[ChatMessage] = []
        for item in result.get("messages", []):
            created_at = _parse_timestamp(item.get("createdAt"))
            message = ChatMessage(role=item["role"], content=item["content"], id=item["id"])
            if created_at is not None:
                message.created_at = created_at
            messages.append(message)

        state = self.state
        state.messages = messages
        state.chat_session_id = chat_session_id
        state.has_analyzed_video = bool(messages)
        state.show_chat = True
        state.is_loading = False
        state.last_error = None

        video = (result.get("chatSession") or {}).get("video")
        if video and video.get("filePath"):
            state.video_url = self.api.playback_url(video["filePath"])
            state.show_preview = False
            machine.transition(RecordingState.STOPPED)
        return True

    async def close(self) -> None:
        await self.recorder.discard()
        self.capture.release()
