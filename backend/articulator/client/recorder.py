"""
Recorder - drives a platform media recorder and tracks the recording state.

State machine::

    idle -> recording -> stopped -> uploading -> processing -> stopped
                                  \\-> stopped (upload failed)

``reset`` returns to ``idle`` from any state except ``recording``.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Protocol

from .devices import MediaStream
from ..core.errors import RecorderStateError

logger = logging.getLogger(__name__)

RECORDING_MIME_TYPE = "video/webm; codecs=vp9"
RECORDED_VIDEO_MIME_TYPE = "video/webm"


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"
    UPLOADING = "uploading"
    PROCESSING = "processing"


_TRANSITIONS: Dict[RecordingState, FrozenSet[RecordingState]] = {
    RecordingState.IDLE: frozenset({RecordingState.RECORDING, RecordingState.STOPPED}),
    RecordingState.RECORDING: frozenset({RecordingState.STOPPED}),
    RecordingState.STOPPED: frozenset({RecordingState.UPLOADING, RecordingState.STOPPED}),
    RecordingState.UPLOADING: frozenset({RecordingState.PROCESSING, RecordingState.STOPPED}),
    RecordingState.PROCESSING: frozenset({RecordingState.STOPPED}),
}


class RecordingStateMachine:
    """Holds exactly one RecordingState and rejects out-of-order transitions."""

    def __init__(self, on_change: Optional[Callable[[RecordingState, RecordingState], None]] = None):
        self.state = RecordingState.IDLE
        self.on_change = on_change

    def can_transition(self, target: RecordingState) -> bool:
        return target in _TRANSITIONS[self.state]

    def transition(self, target: RecordingState) -> None:
        if not self.can_transition(target):
            raise RecorderStateError(f"Cannot go from {self.state.value} to {target.value}")
        self._set(target)

    def reset(self) -> None:
        if self.state is RecordingState.RECORDING:
            raise RecorderStateError("Cannot reset while recording, stop first")
        self._set(RecordingState.IDLE)

    def _set(self, target: RecordingState) -> None:
        previous, self.state = self.state, target
        logger.debug(f"Recording state {previous.value} -> {target.value}")
        if self.on_change and previous is not target:
            self.on_change(previous, target)


@dataclass(frozen=True)
class RecordedVideo:
    """One finalized recording."""

    data: bytes
    mime_type: str = RECORDED_VIDEO_MIME_TYPE
    duration_seconds: int = 0

    @property
    def size(self) -> int:
        return len(self.data)


class MediaRecorderBackend(Protocol):
    """Platform recording facility bound to a live stream."""

    def start(self, stream: MediaStream, mime_type: str, on_data: Callable[[bytes], None]) -> None: ...

    async def stop(self) -> None:
        """Stop recording; every pending chunk is delivered to ``on_data`` before returning."""
        ...


def format_time(seconds: int) -> str:
    """Elapsed seconds as ``MM:SS``."""
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins:02d}:{secs:02d}"


class Recorder:
    """
    Records the live stream into a single RecordedVideo.

    Args:
        backend: Platform recorder implementation
        machine: Shared recording state machine
        tick_interval: Seconds between elapsed-time ticks
    """

    def __init__(
        self,
        backend: MediaRecorderBackend,
        machine: Optional[RecordingStateMachine] = None,
        tick_interval: float = 1.0,
    ):
        self.backend = backend
        self.machine = machine or RecordingStateMachine()
        self.tick_interval = tick_interval
        self.elapsed_seconds = 0
        self.recorded: Optional[RecordedVideo] = None
        self._chunks: List[bytes] = []
        self._ticker: Optional[asyncio.Task] = None

    @property
    def is_recording(self) -> bool:
        return self.machine.state is RecordingState.RECORDING

    @property
    def elapsed(self) -> str:
        return format_time(self.elapsed_seconds)

    def _on_data(self, chunk: bytes) -> None:
        if chunk:
            self._chunks.append(chunk)

    async def start(self, stream: Optional[MediaStream]) -> bool:
        """
        Begin recording. A no-op unless the recorder is idle.

        Returns:
            True if a new recording was started
        """
        if stream is None or self.machine.state is not RecordingState.IDLE:
            return False

        self._chunks = []
        self.recorded = None
        self.elapsed_seconds = 0
        self.backend.start(stream, RECORDING_MIME_TYPE, self._on_data)
        self.machine.transition(RecordingState.RECORDING)
        self._ticker = asyncio.create_task(self._run_ticker())
        logger.info("Recording started")
        return True

    async def stop(self) -> Optional[RecordedVideo]:
        """Finalize buffered chunks into one RecordedVideo and move to ``stopped``."""
        if not self.is_recording:
            return None

        self._cancel_ticker()
        await self.backend.stop()
        self.recorded = RecordedVideo(
            data=b"".join(self._chunks),
            duration_seconds=self.elapsed_seconds,
        )
        self._chunks = []
        self.machine.transition(RecordingState.STOPPED)
        logger.info(
            "Recording stopped",
            extra={"extra_fields": {"bytes": self.recorded.size, "duration": self.elapsed}},
        )
        return self.recorded

    def tick(self) -> None:
        if self.is_recording:
            self.elapsed_seconds += 1

    async def discard(self) -> None:
        """Stop any active recording and drop everything recorded so far."""
        if self.is_recording:
            self._cancel_ticker()
            await self.backend.stop()
            self.machine.transition(RecordingState.STOPPED)
        self._chunks = []
        self.recorded = None
        self.elapsed_seconds = 0

    async def _run_ticker(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.tick()

    def _cancel_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
