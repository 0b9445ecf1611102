"""
Tests for local recording storage.
"""

import pytest

from articulator.storage import LocalStorage


@pytest.fixture
def storage(upload_dir):
    return LocalStorage(str(upload_dir))


@pytest.mark.asyncio
async def test_save_load_delete(storage, upload_dir):
    assert await storage.save("video_1.webm", b"data") is True
    assert (upload_dir / "video_1.webm").read_bytes() == b"data"
    assert await storage.exists("video_1.webm")
    assert await storage.load("video_1.webm") == b"data"

    assert await storage.delete("video_1.webm") is True
    assert not await storage.exists("video_1.webm")
    assert await storage.load("video_1.webm") is None
    assert await storage.delete("video_1.webm") is False


@pytest.mark.asyncio
async def test_traversal_rejected(storage, tmp_path):
    assert await storage.save("../escaped.webm", b"x") is False
    assert not (tmp_path / "escaped.webm").exists()
    assert await storage.exists("../../etc/passwd") is False
    with pytest.raises(ValueError):
        storage.full_path("../escaped.webm")


def test_dir_name(storage):
    assert storage.dir_name == "uploads"
