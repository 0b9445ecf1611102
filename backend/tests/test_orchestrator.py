"""
End-to-end tests of the recording client against the real application.
The gateway runs in-process through httpx's ASGI transport.
"""

import httpx
import pytest

from articulator.client import (
    ANALYSIS_USER_MESSAGE,
    AppState,
    ArticulatorClient,
    MediaCaptureAdapter,
    RecordingState,
    SessionOrchestrator,
)
from articulator.core.errors import ChatStreamError, UploadError
from conftest import FakeMediaDevices


@pytest.fixture
def api(app):
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    return ArticulatorClient("http://testserver", http_client=http)


@pytest.fixture
def orchestrator(api, media_devices, recorder_backend):
    state = AppState()
    capture = MediaCaptureAdapter(media_devices, state.preferences)
    return SessionOrchestrator(state, capture, recorder_backend, api, tick_interval=3600)


async def _record(orchestrator, seconds=5):
    assert await orchestrator.initialize()
    assert await orchestrator.start_recording()
    for _ in range(seconds):
        orchestrator.recorder.tick()
    assert await orchestrator.stop_recording()


class TestRecordAnalyze:

    @pytest.mark.asyncio
    async def test_record_stop_analyze(self, orchestrator, store):
        state = orchestrator.state
        await _record(orchestrator)
        assert orchestrator.recorder.elapsed == "00:05"
        assert state.show_preview is False

        assert await orchestrator.analyze() is True

        assert state.recording_state is RecordingState.STOPPED
        assert state.has_analyzed_video is True
        assert state.show_chat is True
        assert state.is_loading is False
        assert [m.role for m in state.messages] == ["user", "assistant"]
        assert state.messages[0].content == ANALYSIS_USER_MESSAGE
        assert state.messages[0].attachments[0].content_type == "video/webm"
        assert state.messages[1].content == "Great pacing. Slow down a little."
        assert "/video/" in state.video_url

        history = store.get_chat_history(state.chat_session_id)
        assert [(m.role, m.content) for m in history.messages] == [
            ("user", ANALYSIS_USER_MESSAGE),
            ("assistant", "Great pacing. Slow down a little."),
        ]

    @pytest.mark.asyncio
    async def test_follow_up_message(self, orchestrator, store):
        await _record(orchestrator)
        await orchestrator.analyze()

        assert await orchestrator.send_message("  How do I pause better?  ") is True

        history = store.get_chat_history(orchestrator.state.chat_session_id)
        assert [m.role for m in history.messages] == ["user", "assistant", "user", "assistant"]
        assert history.messages[2].content == "How do I pause better?"

    @pytest.mark.asyncio
    async def test_analyze_requires_recording(self, orchestrator):
        await orchestrator.initialize()
        assert await orchestrator.analyze() is False
        assert orchestrator.state.recording_state is RecordingState.IDLE

    @pytest.mark.asyncio
    async def test_upload_failure_returns_to_stopped(self, media_devices, recorder_backend, store):
        def handler(request):
            return httpx.Response(500, json={"detail": "Error uploading video"})

        api = ArticulatorClient("http://testserver", http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://testserver"
        ))
        state = AppState()
        orchestrator = SessionOrchestrator(
            state, MediaCaptureAdapter(media_devices), recorder_backend, api, tick_interval=3600
        )
        await _record(orchestrator)

        assert await orchestrator.analyze() is False

        assert state.recording_state is RecordingState.STOPPED
        assert state.chat_session_id is None
        assert state.has_analyzed_video is False
        assert "Error uploading video" in state.last_error
        assert store.list_sessions().chat_sessions == []

    @pytest.mark.asyncio
    async def test_provider_failure_returns_to_stopped(self, orchestrator, fake_provider, store):
        fake_provider.states = ["PROCESSING", "FAILED"]
        await _record(orchestrator)

        assert await orchestrator.analyze() is False

        state = orchestrator.state
        assert state.recording_state is RecordingState.STOPPED
        assert state.is_loading is False
        assert state.last_error == "Error processing chat request"
        assert state.messages == []
        assert store.get_chat_history(state.chat_session_id).messages == []

    @pytest.mark.asyncio
    async def test_stream_error_event(self, orchestrator, fake_provider):
        fake_provider.fail_stream = True
        await _record(orchestrator)

        assert await orchestrator.analyze() is False
        assert orchestrator.state.recording_state is RecordingState.STOPPED
        assert orchestrator.state.last_error == "Error processing chat request"

    @pytest.mark.asyncio
    async def test_failed_follow_up_can_be_retried(self, orchestrator, fake_provider, store):
        await _record(orchestrator)
        assert await orchestrator.analyze() is True

        fake_provider.fail_stream = True
        assert await orchestrator.send_message("How do I pause better?") is False
        assert [m.role for m in orchestrator.state.messages] == ["user", "assistant"]

        fake_provider.fail_stream = False
        assert await orchestrator.send_message("How do I pause better?") is True

        history = store.get_chat_history(orchestrator.state.chat_session_id)
        assert [m.role for m in history.messages] == ["user", "assistant", "user", "assistant"]
        assert [m.role for m in orchestrator.state.messages] == ["user", "assistant", "user", "assistant"]


class TestReset:

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, orchestrator, media_devices):
        await _record(orchestrator)
        await orchestrator.analyze()
        old_stream = orchestrator.capture.stream

        await orchestrator.reset()

        state = orchestrator.state
        assert state.recording_state is RecordingState.IDLE
        assert state.messages == []
        assert state.chat_session_id is None
        assert state.has_analyzed_video is False
        assert state.video_url == ""
        assert state.show_preview is True
        assert orchestrator.recorder.recorded is None
        assert old_stream.stopped
        assert orchestrator.capture.stream is media_devices.streams[-1]

    @pytest.mark.asyncio
    async def test_reset_while_recording_discards(self, orchestrator):
        await orchestrator.initialize()
        await orchestrator.start_recording()

        await orchestrator.reset()

        assert orchestrator.state.recording_state is RecordingState.IDLE
        assert await orchestrator.start_recording() is True
        await orchestrator.close()


class TestLoadSession:

    @pytest.mark.asyncio
    async def test_load_and_resume(self, orchestrator, store, stored_video):
        chat_session = store.create_session_with_video(stored_video.name, str(stored_video), "video/webm")
        store.add_user_message(chat_session.id, "Analyze")
        store.add_assistant_message(chat_session.id, "Earlier feedback")
        await orchestrator.initialize()

        assert await orchestrator.load_session(chat_session.id) is True

        state = orchestrator.state
        assert [m.content for m in state.messages] == ["Analyze", "Earlier feedback"]
        assert state.recording_state is RecordingState.STOPPED
        assert state.show_preview is False
        assert state.video_url.startswith("http://testserver/video/")
        persisted = [(m.id, m.content) for m in store.get_chat_history(chat_session.id).messages]

        assert await orchestrator.send_message("And my pacing?") is True

        assert [(m.id, m.content) for m in state.messages[:2]] == persisted
        after = [(m.id, m.content) for m in store.get_chat_history(chat_session.id).messages]
        assert after[:2] == persisted
        assert after[2][1] == "And my pacing?"

    @pytest.mark.asyncio
    async def test_playback_url_is_served(self, orchestrator, api, store, stored_video):
        chat_session = store.create_session_with_video(stored_video.name, str(stored_video), "video/webm")
        await orchestrator.load_session(chat_session.id)

        response = await api.http.get(orchestrator.state.video_url)

        assert response.status_code == 200
        assert response.content == stored_video.read_bytes()

    @pytest.mark.asyncio
    async def test_unknown_session(self, orchestrator):
        assert await orchestrator.load_session("missing") is False
        assert orchestrator.state.last_error == "Chat session not found"
        assert orchestrator.state.recording_state is RecordingState.IDLE


class TestClientErrors:

    @pytest.mark.asyncio
    async def test_chat_stream_error_status(self, api):
        with pytest.raises(ChatStreamError) as exc_info:
            async for _ in api.stream_chat([{"role": "user", "content": "hi"}], "missing"):
                pass
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_upload_rejected(self, api):
        with pytest.raises(UploadError) as exc_info:
            await api.upload_video(b"")
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_upload_unexpected_body(self, media_devices, recorder_backend):
        def handler(request):
            return httpx.Response(200, json={"success": True})

        api = ArticulatorClient("http://testserver", http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://testserver"
        ))
        with pytest.raises(UploadError, match="Unexpected upload response"):
            await api.upload_video(b"webm-data")

        orchestrator = SessionOrchestrator(
            AppState(), MediaCaptureAdapter(media_devices), recorder_backend, api, tick_interval=3600
        )
        await _record(orchestrator)
        assert await orchestrator.analyze() is False
        assert orchestrator.state.recording_state is RecordingState.STOPPED
        assert orchestrator.state.last_error

    @pytest.mark.asyncio
    async def test_history_network_failure(self, media_devices, recorder_backend):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = ArticulatorClient("http://testserver", http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://testserver"
        ))
        orchestrator = SessionOrchestrator(
            AppState(), MediaCaptureAdapter(media_devices), recorder_backend, api, tick_interval=3600
        )

        assert (await orchestrator.list_sessions())["success"] is False
        assert await orchestrator.load_session("abc") is False
        assert orchestrator.state.last_error == "Failed to load chat history"

    @pytest.mark.asyncio
    async def test_collect_text(self, api, store, stored_video):
        result = store.create_session_with_video(stored_video.name, str(stored_video), "video/webm")
        text = await api.collect_text(api.analyze_video(str(stored_video), "video/webm", result.id))
        assert text == "Great pacing. Slow down a little."

    @pytest.mark.asyncio
    async def test_list_sessions(self, orchestrator, store, stored_video):
        store.create_session_with_video(stored_video.name, str(stored_video), "video/webm")
        result = await orchestrator.list_sessions()
        assert result["success"] is True
        assert len(result["chatSessions"]) == 1


class TestDevices:

    @pytest.mark.asyncio
    async def test_list_and_switch(self, orchestrator, media_devices):
        await orchestrator.initialize()
        devices = await orchestrator.list_devices()
        assert len(devices.video_inputs) == 2

        assert await orchestrator.switch_devices(devices.video_inputs[1].device_id, None) is True

        assert orchestrator.state.preferences.video_device_id == "cam-2222bbbb"
        assert len([s for s in media_devices.streams if not s.stopped]) == 1

    @pytest.mark.asyncio
    async def test_permission_denied(self, api, recorder_backend):
        orchestrator = SessionOrchestrator(
            AppState(), MediaCaptureAdapter(FakeMediaDevices(grant=False)), recorder_backend, api
        )

        assert await orchestrator.initialize() is False
        assert orchestrator.has_permissions is False
        assert orchestrator.state.last_error
        assert await orchestrator.start_recording() is False
