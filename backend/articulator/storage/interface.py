"""
Storage Interface - Abstract base class for recorded video storage.
Lets the upload endpoint stay agnostic of where bytes end up.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class StorageInterface(ABC):
    """
    Contract for storage backends holding uploaded recordings.
    """

    @abstractmethod
    async def save(self, path: str, content: bytes) -> bool:
        """
        Persist a recording under the storage root.

        Args:
            path: Relative name, e.g. "video_1718000000000.webm"
            content: Encoded video bytes

        Returns:
            bool: False when the write failed
        """
        pass

    @abstractmethod
    async def load(self, path: str) -> Optional[bytes]:
        """
        Read a stored recording back.

        Returns:
            Optional[bytes]: The bytes, or None for an unknown name
        """
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Whether a recording with this relative name is stored."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """
        Remove a stored recording.

        Returns:
            bool: False when nothing was stored under that name
        """
        pass

    @abstractmethod
    def full_path(self, path: str) -> Path:
        """Absolute location of ``path``; raises ValueError if it escapes the root."""
        pass
