"""
Shared test fixtures and configuration.
"""

import os
import tempfile
from typing import Dict, List, Optional

import pytest

# Set test environment variables before importing app modules
_TEST_ROOT = tempfile.mkdtemp(prefix="articulator_test_")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_ROOT}/articulator.db")
os.environ.setdefault("UPLOAD_DIR", f"{_TEST_ROOT}/uploads")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LLM_API_KEY", "")

from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from articulator.client.devices import DeviceInfo
from articulator.config import Settings
from articulator.core.errors import MediaAccessError
from articulator.db import create_db_engine, create_session_factory, init_db
from articulator.llm.base import (
    FILE_STATE_ACTIVE,
    FILE_STATE_PROCESSING,
    LLMProvider,
    RemoteFile,
    StreamChunk,
)
from articulator.main import create_app
from articulator.services.chat_store import ChatStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeProvider(LLMProvider):
    """
    In-process provider.

    ``states`` is the sequence of states reported by ``get_file`` after the
    upload; the upload itself reports ``PROCESSING`` while states remain.
    """

    def __init__(
        self,
        states: Optional[List[str]] = None,
        chunks: Optional[List[str]] = None,
        fail_stream: bool = False,
        usage: Optional[Dict[str, int]] = None,
    ):
        super().__init__(api_key="fake", model="fake-model")
        self.states = list(states or [])
        self.chunks = chunks if chunks is not None else ["Great ", "pacing. ", "Slow down a little."]
        self.fail_stream = fail_stream
        self.usage = usage or {}
        self.uploads: List[str] = []
        self.get_file_calls = 0
        self.stream_calls: List[dict] = []

    def _state(self) -> str:
        return self.states.pop(0) if self.states else FILE_STATE_ACTIVE

    def _file(self, state: str) -> RemoteFile:
        uri = "https://files.example/files/abc" if state == FILE_STATE_ACTIVE else None
        return RemoteFile(name="files/abc", state=state, mime_type="video/webm", uri=uri)

    async def upload_file(self, file_path: str, mime_type: str) -> RemoteFile:
        self.uploads.append(file_path)
        return self._file(FILE_STATE_PROCESSING if self.states else FILE_STATE_ACTIVE)

    async def get_file(self, name: str) -> RemoteFile:
        self.get_file_calls += 1
        return self._file(self._state())

    async def chat_completion_stream(self, messages, system_prompt=None, temperature=None, max_tokens=None, **kwargs):
        self.stream_calls.append({
            "messages": messages,
            "system_prompt": system_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        for text in self.chunks:
            yield StreamChunk(text=text)
        if self.fail_stream:
            raise RuntimeError("model connection dropped")
        yield StreamChunk(finish_reason="stop", usage=self.usage)


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def test_settings(upload_dir):
    return Settings(
        upload_dir=str(upload_dir),
        database_url="sqlite://",
        llm_api_key="fake",
        file_poll_interval_seconds=0.0,
        file_poll_max_attempts=3,
        file_poll_deadline_seconds=30.0,
        log_file_enabled=False,
        log_api_requests=True,
    )


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def chat_store(engine):
    return ChatStore(create_session_factory(engine))


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def app(test_settings, fake_provider, engine):
    return create_app(config=test_settings, llm_provider=fake_provider, engine=engine)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def store(app):
    """ChatStore used by ``app``."""
    return app.state.chat_store


@pytest.fixture
def stored_video(upload_dir):
    """A recording already present in the upload directory."""
    path = upload_dir / "video_1700000000000.webm"
    path.write_bytes(b"\x1a\x45\xdf\xa3 fake webm")
    return path


# Client-side platform doubles

class FakeTrack:
    def __init__(self, kind: str):
        self.kind = kind
        self.stopped = False

    def stop(self):
        self.stopped = True


class FakeStream:
    def __init__(self, kinds=("video", "audio")):
        self.tracks = [FakeTrack(kind) for kind in kinds]

    def get_tracks(self):
        return list(self.tracks)

    @property
    def stopped(self) -> bool:
        return all(track.stopped for track in self.tracks)


class FakeMediaDevices:
    """Platform media devices with scriptable permission and track behaviour."""

    def __init__(self, devices=None, grant=True, labels_after_grant=True, kinds=("video", "audio")):
        self.devices = devices if devices is not None else [
            DeviceInfo("cam-1111aaaa", "videoinput", ""),
            DeviceInfo("cam-2222bbbb", "videoinput", ""),
            DeviceInfo("mic-3333cccc", "audioinput", ""),
        ]
        self.grant = grant
        self.labels_after_grant = labels_after_grant
        self.kinds = kinds
        self.granted = False
        self.constraints: List[dict] = []
        self.streams: List[FakeStream] = []

    async def enumerate_devices(self):
        if self.granted and self.labels_after_grant:
            return [DeviceInfo(d.device_id, d.kind, d.label or f"Label {d.device_id}") for d in self.devices]
        return list(self.devices)

    async def get_user_media(self, constraints):
        self.constraints.append(constraints)
        if not self.grant:
            raise MediaAccessError("Permission denied")
        self.granted = True
        stream = FakeStream(self.kinds)
        self.streams.append(stream)
        return stream


class FakeRecorderBackend:
    """Platform recorder that emits ``payload`` split into chunks on stop."""

    def __init__(self, payload: bytes = b"recorded-video-bytes"):
        self.payload = payload
        self.started = 0
        self.stopped = 0
        self.mime_type = None
        self._on_data = None

    def start(self, stream, mime_type, on_data):
        self.started += 1
        self.mime_type = mime_type
        self._on_data = on_data

    async def stop(self):
        self.stopped += 1
        half = len(self.payload) // 2
        self._on_data(self.payload[:half])
        self._on_data(self.payload[half:])


@pytest.fixture
def media_devices():
    return FakeMediaDevices()


@pytest.fixture
def recorder_backend():
    return FakeRecorderBackend()
