"""
Integration tests for the HTTP endpoints.
Uses FastAPI TestClient with an in-memory database and a fake provider.
"""

from unittest.mock import patch

from sqlalchemy import func, select
from starlette.concurrency import run_in_threadpool

from articulator.core.stream_protocol import StreamDecoder
from articulator.db.models import Message
from articulator.services.prompts import ANALYSIS_PROMPT, ANALYSIS_REQUEST_TEXT, CHAT_PROMPT


def _events(response):
    decoder = StreamDecoder()
    events = decoder.feed(response.text)
    return events + decoder.close()


def _message_count(engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count(Message.id))).scalar()


def _session_for(store, stored_video):
    return store.create_session_with_video(stored_video.name, str(stored_video), "video/webm")


class TestAppEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["llm_configured"] is True


class TestUploadVideo:

    def test_missing_video_field(self, client, upload_dir, engine):
        response = client.post("/upload-video", files={"other": ("note.txt", b"hello", "text/plain")})

        assert response.status_code == 400
        assert list(upload_dir.iterdir()) == []
        assert client.get("/chat-sessions").json()["chatSessions"] == []

    def test_empty_video(self, client, upload_dir):
        response = client.post("/upload-video", files={"video": ("recording.webm", b"", "video/webm")})
        assert response.status_code == 400
        assert list(upload_dir.iterdir()) == []

    def test_upload_creates_session(self, client, upload_dir, store):
        response = client.post("/upload-video", files={"video": ("recording.webm", b"webm-data", "video/webm")})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mimeType"] == "video/webm"
        assert data["fileName"].startswith("video_") and data["fileName"].endswith(".webm")
        assert (upload_dir / data["fileName"]).read_bytes() == b"webm-data"

        chat_session = store.get_session(data["chatSessionId"])
        assert chat_session.video.file_path == data["filePath"]

    def test_upload_mp4_extension(self, client):
        response = client.post("/upload-video", files={"video": ("clip.mov", b"data", "video/quicktime")})
        assert response.json()["fileName"].endswith(".mp4")
        assert response.json()["mimeType"] == "video/mp4"


class TestChat:

    def test_invalid_json(self, client):
        response = client.post("/chat", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_missing_messages(self, client):
        response = client.post("/chat", json={"chatSessionId": "abc"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid messages format"

    def test_empty_messages(self, client):
        response = client.post("/chat", json={"messages": [], "chatSessionId": "abc"})
        assert response.status_code == 400

    def test_bad_role(self, client):
        response = client.post("/chat", json={"messages": [{"role": "system", "content": "x"}], "chatSessionId": "abc"})
        assert response.status_code == 400

    def test_missing_session_id(self, client):
        response = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})
        assert response.status_code == 400
        assert response.json()["detail"] == "chatSessionId is required"

    def test_unknown_session(self, client, engine, fake_provider):
        response = client.post("/chat", json={
            "messages": [{"role": "user", "content": "hi"}],
            "chatSessionId": "does-not-exist",
        })

        assert response.status_code == 404
        assert _message_count(engine) == 0
        assert fake_provider.stream_calls == []

    def test_file_path_outside_upload_dir(self, client, store, stored_video, tmp_path):
        chat_session = _session_for(store, stored_video)
        outside = tmp_path / "secret.webm"
        outside.write_bytes(b"x")

        response = client.post("/chat", json={
            "messages": [{"role": "user", "content": "hi"}],
            "chatSessionId": chat_session.id,
            "filePath": str(outside),
        })

        assert response.status_code == 400
        assert store.count_messages(chat_session.id) == 0

    def test_chat_with_recording(self, client, store, stored_video, fake_provider):
        chat_session = _session_for(store, stored_video)

        response = client.post("/chat", json={
            "messages": [{"role": "user", "content": "Please analyze my speech"}],
            "chatSessionId": chat_session.id,
            "filePath": str(stored_video),
            "mimeType": "video/webm",
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _events(response)
        assert [e.type for e in events] == ["start", "delta", "delta", "delta", "finish"]
        assert "".join(e.text for e in events) == "Great pacing. Slow down a little."
        assert events[-1].payload["finishReason"] == "stop"
        assert events[-1].payload["usage"]["totalTokens"] > 0

        history = store.get_chat_history(chat_session.id)
        assert [(m.role, m.content) for m in history.messages] == [
            ("user", "Please analyze my speech"),
            ("assistant", "Great pacing. Slow down a little."),
        ]

        call = fake_provider.stream_calls[0]
        assert call["system_prompt"] == CHAT_PROMPT
        assert call["temperature"] == 0.7
        assert call["messages"][-1].content[0]["type"] == "file"
        assert store.get_session(chat_session.id).video.remote_file_uri == "https://files.example/files/abc"

    def test_follow_up_reattaches_remembered_file(self, client, store, stored_video, fake_provider):
        chat_session = _session_for(store, stored_video)
        client.post("/chat", json={
            "messages": [{"role": "user", "content": "Analyze"}],
            "chatSessionId": chat_session.id,
            "filePath": str(stored_video),
        })

        response = client.post("/chat", json={
            "messages": [
                {"role": "user", "content": "Analyze"},
                {"role": "assistant", "content": "Great pacing. Slow down a little."},
                {"role": "user", "content": "How do I slow down?"},
            ],
            "chatSessionId": chat_session.id,
        })

        assert response.status_code == 200
        assert len(fake_provider.uploads) == 1
        messages = fake_provider.stream_calls[-1]["messages"]
        assert messages[0].content[0]["type"] == "file"
        assert messages[-1].content == "How do I slow down?"
        assert store.count_messages(chat_session.id) == 4

    def test_stream_failure_emits_error_event(self, client, store, stored_video, fake_provider):
        chat_session = _session_for(store, stored_video)
        fake_provider.fail_stream = True

        response = client.post("/chat", json={
            "messages": [{"role": "user", "content": "hi"}],
            "chatSessionId": chat_session.id,
        })

        events = _events(response)
        assert events[-1].type == "error"
        assert events[-1].payload["timestamp"]
        assert [m.role for m in store.get_chat_history(chat_session.id).messages] == ["user"]

    def test_retry_after_failed_processing(self, client, store, stored_video, fake_provider):
        chat_session = _session_for(store, stored_video)
        request = {
            "messages": [{"role": "user", "content": "Please analyze my speech"}],
            "chatSessionId": chat_session.id,
            "filePath": str(stored_video),
        }
        fake_provider.states = ["PROCESSING", "FAILED"]

        failed = client.post("/chat", json=request)
        assert failed.status_code == 500
        assert store.count_messages(chat_session.id) == 0
        assert store.get_session(chat_session.id).video.remote_file_uri is None

        retried = client.post("/chat", json=request)
        assert retried.status_code == 200
        assert [m.role for m in store.get_chat_history(chat_session.id).messages] == ["user", "assistant"]


class TestAnalyzeVideo:

    def test_missing_file_path(self, client, fake_provider):
        response = client.post("/analyze-video", json={"mimeType": "video/webm"})
        assert response.status_code == 400
        assert fake_provider.uploads == []

    def test_unknown_file(self, client, upload_dir, fake_provider):
        response = client.post("/analyze-video", json={"filePath": str(upload_dir / "nope.webm")})
        assert response.status_code == 400
        assert fake_provider.uploads == []

    def test_failed_processing_aborts(self, client, store, stored_video, fake_provider, engine):
        chat_session = _session_for(store, stored_video)
        fake_provider.states = ["PROCESSING", "FAILED"]

        response = client.post("/analyze-video", json={
            "filePath": str(stored_video),
            "chatSessionId": chat_session.id,
        })

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Error analyzing video"
        assert body["kind"] == "failed"
        assert body["timestamp"]
        assert _message_count(engine) == 0
        assert fake_provider.stream_calls == []

    def test_processing_timeout(self, client, stored_video, fake_provider):
        fake_provider.states = ["PROCESSING"] * 10

        response = client.post("/analyze-video", json={"filePath": str(stored_video)})

        assert response.status_code == 504
        assert response.json()["kind"] == "timeout"

    def test_analysis_streams_and_persists(self, client, store, stored_video, fake_provider):
        chat_session = _session_for(store, stored_video)

        response = client.post("/analyze-video", json={
            "filePath": str(stored_video),
            "mimeType": "video/webm",
            "chatSessionId": chat_session.id,
        })

        assert response.status_code == 200
        events = _events(response)
        assert events[0].type == "start"
        assert events[-1].type == "finish"
        assert fake_provider.stream_calls[0]["system_prompt"] == ANALYSIS_PROMPT

        history = store.get_chat_history(chat_session.id)
        assert [m.role for m in history.messages] == ["user", "assistant"]
        assert history.messages[0].content == ANALYSIS_REQUEST_TEXT

    def test_unknown_session(self, client, stored_video):
        response = client.post("/analyze-video", json={
            "filePath": str(stored_video),
            "chatSessionId": "missing",
        })
        assert response.status_code == 404

    def test_provider_not_configured(self, test_settings, engine, stored_video):
        from fastapi.testclient import TestClient
        from articulator.main import create_app

        test_settings.llm_api_key = None
        client = TestClient(create_app(config=test_settings, engine=engine))

        response = client.post("/analyze-video", json={"filePath": str(stored_video)})

        assert response.status_code == 500
        assert "not configured" in response.json()["details"]


class TestChatSessions:

    def test_list_sessions(self, client, store, stored_video):
        chat_session = _session_for(store, stored_video)
        store.add_user_message(chat_session.id, "hi")

        response = client.get("/chat-sessions")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["chatSessions"][0]["id"] == chat_session.id
        assert data["chatSessions"][0]["messageCount"] == 1
        assert data["chatSessions"][0]["video"]["fileName"] == stored_video.name

    def test_get_history(self, client, store, stored_video):
        chat_session = _session_for(store, stored_video)
        store.add_user_message(chat_session.id, "hi")
        store.add_assistant_message(chat_session.id, "hello")

        response = client.get(f"/chat-sessions/{chat_session.id}")

        assert response.status_code == 200
        data = response.json()
        assert [m["content"] for m in data["messages"]] == ["hi", "hello"]
        assert data["chatSession"]["video"]["filePath"] == str(stored_video)

    def test_history_read_runs_in_threadpool(self, client, store, stored_video):
        chat_session = _session_for(store, stored_video)

        with patch("articulator.api.sessions.run_in_threadpool", wraps=run_in_threadpool) as offload:
            response = client.get(f"/chat-sessions/{chat_session.id}")

        assert response.status_code == 200
        offload.assert_called_once_with(store.get_chat_history, chat_session.id)

    def test_get_history_unknown(self, client):
        response = client.get("/chat-sessions/missing")
        assert response.status_code == 404
        assert response.json() == {"success": False, "chatSession": None, "messages": [], "error": "Chat session not found"}
