"""
Recording client - device capture, recorder state machine and the
orchestrator that drives upload, analysis and chat against the gateway.
"""

from .api import ArticulatorClient, UploadResult
from .devices import DeviceInfo, DeviceLists, MediaCaptureAdapter, build_constraints
from .orchestrator import ANALYSIS_USER_MESSAGE, SessionOrchestrator
from .preferences import DevicePreferenceStore, InMemoryPreferenceBackend, JsonFilePreferenceBackend
from .recorder import RecordedVideo, Recorder, RecordingState, RecordingStateMachine, format_time
from .state import AppState, Attachment, ChatMessage

__all__ = [
    "ArticulatorClient",
    "UploadResult",
    "DeviceInfo",
    "DeviceLists",
    "MediaCaptureAdapter",
    "build_constraints",
    "ANALYSIS_USER_MESSAGE",
    "SessionOrchestrator",
    "DevicePreferenceStore",
    "InMemoryPreferenceBackend",
    "JsonFilePreferenceBackend",
    "RecordedVideo",
    "Recorder",
    "RecordingState",
    "RecordingStateMachine",
    "format_time",
    "AppState",
    "Attachment",
    "ChatMessage",
]
