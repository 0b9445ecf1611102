"""
Device preferences - remembered camera and microphone selection.

Preferences survive restarts through a small key/value backend (a JSON file
by default). Backend failures are logged and otherwise ignored, so a broken
preference file never blocks capture.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

VIDEO_DEVICE_KEY = "preferred-video-device"
AUDIO_DEVICE_KEY = "preferred-audio-device"


class PreferenceBackend(Protocol):
    """Minimal key/value storage, the client-side equivalent of local storage."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryPreferenceBackend:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFilePreferenceBackend:
    """Preferences stored as one JSON object in a file."""

    def __init__(self, path: str):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}

    def _write(self, values: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(values, indent=2), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._read()
        values[key] = value
        self._write(values)

    def remove(self, key: str) -> None:
        values = self._read()
        if values.pop(key, None) is not None:
            self._write(values)


class DevicePreferenceStore:
    """Selected camera/microphone ids, persisted through a PreferenceBackend."""

    def __init__(self, backend: Optional[PreferenceBackend] = None):
        self.backend = backend or InMemoryPreferenceBackend()

    def _get(self, key: str) -> Optional[str]:
        try:
            return self.backend.get(key)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read device preference {key}: {e}")
            return None

    def _put(self, key: str, value: Optional[str]) -> None:
        try:
            if value:
                self.backend.set(key, value)
            else:
                self.backend.remove(key)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to save device preference {key}: {e}")

    @property
    def video_device_id(self) -> Optional[str]:
        return self._get(VIDEO_DEVICE_KEY)

    @property
    def audio_device_id(self) -> Optional[str]:
        return self._get(AUDIO_DEVICE_KEY)

    def save(self, video_device_id: Optional[str], audio_device_id: Optional[str]) -> None:
        """Remember a selection; ``None`` forgets the stored id of that kind."""
        self._put(VIDEO_DEVICE_KEY, video_device_id)
        self._put(AUDIO_DEVICE_KEY, audio_device_id)
