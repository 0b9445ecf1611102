"""
Local Filesystem Storage Implementation.
Recordings are written below a single upload directory on the server.
"""

import logging
from pathlib import Path
from typing import Optional

import aiofiles

from .interface import StorageInterface

logger = logging.getLogger(__name__)


class LocalStorage(StorageInterface):
    """
    Local filesystem storage rooted at the upload directory.
    """

    def __init__(self, base_dir: str = "./uploads"):
        """
        Args:
            base_dir: Directory holding all uploaded recordings
        """
        self.base_dir = Path(base_dir).resolve()

    @property
    def dir_name(self) -> str:
        """Final path component of the storage root."""
        return self.base_dir.name

    def full_path(self, path: str) -> Path:
        """Convert relative path to full absolute path within base directory."""
        full_path = (self.base_dir / path).resolve()

        if full_path != self.base_dir and self.base_dir not in full_path.parents:
            raise ValueError(f"Invalid path: {path} - path traversal detected")

        return full_path

    async def save(self, path: str, content: bytes) -> bool:
        """Write bytes to local filesystem."""
        try:
            full_path = self.full_path(path)
            full_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(full_path, 'wb') as f:
                await f.write(content)
            return True
        except (OSError, ValueError) as e:
            logger.error(f"Error saving file {path}: {e}", exc_info=True)
            return False

    async def load(self, path: str) -> Optional[bytes]:
        """Read bytes from local filesystem."""
        try:
            full_path = self.full_path(path)
            if not full_path.is_file():
                return None
            async with aiofiles.open(full_path, 'rb') as f:
                return await f.read()
        except (OSError, ValueError) as e:
            logger.error(f"Error loading file {path}: {e}")
            return None

    async def exists(self, path: str) -> bool:
        try:
            return self.full_path(path).is_file()
        except ValueError:
            return False

    async def delete(self, path: str) -> bool:
        """Delete file from local filesystem."""
        try:
            full_path = self.full_path(path)
            if full_path.is_file():
                full_path.unlink()
                return True
            return False
        except (OSError, ValueError) as e:
            logger.error(f"Error deleting file {path}: {e}")
            return False
