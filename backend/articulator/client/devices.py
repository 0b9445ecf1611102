"""
Media capture adapter - camera/microphone access behind a capability interface.

The platform (a browser bridge, a native capture library or a test double)
implements ``MediaDevices``. The adapter owns the single live stream: every
new acquisition stops the previous stream's tracks first, so two live
streams never coexist.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .preferences import DevicePreferenceStore
from ..core.errors import MediaAccessError

logger = logging.getLogger(__name__)

VIDEO_INPUT = "videoinput"
AUDIO_INPUT = "audioinput"


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str
    kind: str  # videoinput, audioinput
    label: str = ""


class MediaTrack(Protocol):
    kind: str  # "video" or "audio"

    def stop(self) -> None: ...


class MediaStream(Protocol):
    def get_tracks(self) -> List[MediaTrack]: ...


class MediaDevices(Protocol):
    """Platform capability: enumerate devices and open live streams."""

    async def enumerate_devices(self) -> List[DeviceInfo]: ...

    async def get_user_media(self, constraints: Dict[str, Any]) -> MediaStream:
        """Open a stream; raises MediaAccessError when denied, busy or missing."""
        ...


@dataclass
class DeviceLists:
    video_inputs: List[DeviceInfo] = field(default_factory=list)
    audio_inputs: List[DeviceInfo] = field(default_factory=list)

    @property
    def default_video_id(self) -> Optional[str]:
        return self.video_inputs[0].device_id if self.video_inputs else None

    @property
    def default_audio_id(self) -> Optional[str]:
        return self.audio_inputs[0].device_id if self.audio_inputs else None


def build_constraints(video_device_id: Optional[str] = None, audio_device_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Capture constraints: 720p at 30 fps, speech-friendly audio processing.

    Args:
        video_device_id: Exact camera to use, or None for the user-facing default
        audio_device_id: Exact microphone to use, or None for the default
    """
    video: Dict[str, Any] = {
        "width": {"ideal": 1280, "max": 1920},
        "height": {"ideal": 720, "max": 1080},
        "frameRate": {"ideal": 30},
    }
    if video_device_id:
        video["deviceId"] = {"exact": video_device_id}
    else:
        video["facingMode"] = "user"

    audio: Dict[str, Any] = {
        "echoCancellation": True,
        "noiseSuppression": True,
        "autoGainControl": True,
        "sampleRate": 44100,
        "channelCount": 2,
    }
    if audio_device_id:
        audio["deviceId"] = {"exact": audio_device_id}

    return {"video": video, "audio": audio}


def stop_stream(stream: Optional[MediaStream]) -> None:
    if stream is None:
        return
    for track in stream.get_tracks():
        track.stop()


def _labelled(devices: List[DeviceInfo], kind: str, fallback: str) -> List[DeviceInfo]:
    return [
        DeviceInfo(d.device_id, d.kind, d.label or f"{fallback} {d.device_id[:8]}")
        for d in devices if d.kind == kind
    ]


class MediaCaptureAdapter:
    """Acquires, switches and releases the live camera/microphone stream."""

    def __init__(self, media_devices: MediaDevices, preferences: Optional[DevicePreferenceStore] = None):
        self.media_devices = media_devices
        self.preferences = preferences or DevicePreferenceStore()
        self.stream: Optional[MediaStream] = None
        self.has_permissions = False

    async def list_devices(self) -> DeviceLists:
        """
        Enumerate cameras and microphones.

        Without a prior grant the platform hides labels; in that case a
        throwaway stream is opened purely to unlock them, stopped at once,
        and devices are enumerated again.
        """
        devices = await self.media_devices.enumerate_devices()

        if any(not d.label for d in devices):
            try:
                probe = await self.media_devices.get_user_media({"video": True, "audio": True})
            except MediaAccessError:
                logger.info("Permissions not granted, using devices without labels")
            else:
                stop_stream(probe)
                devices = await self.media_devices.enumerate_devices()

        return DeviceLists(
            video_inputs=_labelled(devices, VIDEO_INPUT, "Camera"),
            audio_inputs=_labelled(devices, AUDIO_INPUT, "Microphone"),
        )

    async def _validated_preferences(self) -> Tuple[Optional[str], Optional[str]]:
        """Stored ids that still match a connected device; stale ones are forgotten."""
        video_id = self.preferences.video_device_id
        audio_id = self.preferences.audio_device_id
        if not video_id and not audio_id:
            return None, None

        devices = await self.media_devices.enumerate_devices()
        video_ids = {d.device_id for d in devices if d.kind == VIDEO_INPUT}
        audio_ids = {d.device_id for d in devices if d.kind == AUDIO_INPUT}

        valid_video = video_id if video_id in video_ids else None
        valid_audio = audio_id if audio_id in audio_ids else None
        if (valid_video, valid_audio) != (video_id, audio_id):
            logger.info("Stored device preference no longer available, falling back to defaults")
            self.preferences.save(valid_video, valid_audio)
        return valid_video, valid_audio

    async def initialize(self, video_device_id: Optional[str] = None, audio_device_id: Optional[str] = None) -> bool:
        """
        Open the live stream, replacing any existing one.

        Args:
            video_device_id: Camera override, defaults to the stored preference
            audio_device_id: Microphone override, defaults to the stored preference

        Returns:
            True if a stream with both video and audio is live
        """
        if video_device_id is None and audio_device_id is None:
            video_device_id, audio_device_id = await self._validated_preferences()

        self.release()

        try:
            stream = await self.media_devices.get_user_media(build_constraints(video_device_id, audio_device_id))
        except MediaAccessError as e:
            logger.error(f"Error accessing camera/microphone: {e}")
            self.has_permissions = False
            return False

        kinds = {track.kind for track in stream.get_tracks()}
        if not {"video", "audio"} <= kinds:
            logger.error(f"Stream is missing tracks, got: {sorted(kinds)}")
            stop_stream(stream)
            self.has_permissions = False
            return False

        self.stream = stream
        self.has_permissions = True
        return True

    async def switch_devices(self, video_device_id: Optional[str], audio_device_id: Optional[str]) -> bool:
        """
        Remember a new selection and, once access was granted, reopen the stream with it.

        A kind passed as ``None`` keeps its stored preference.
        """
        video_device_id = video_device_id or self.preferences.video_device_id
        audio_device_id = audio_device_id or self.preferences.audio_device_id
        self.preferences.save(video_device_id, audio_device_id)
        if not self.has_permissions:
            return False
        return await self.initialize(video_device_id, audio_device_id)

    def release(self) -> None:
        """Stop every track of the live stream."""
        stop_stream(self.stream)
        self.stream = None
