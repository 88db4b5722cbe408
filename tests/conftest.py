# tests/conftest.py
import os

# Settings are read at import time; give them a complete test environment first.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("ALLOWED_ORIGIN", "http://localhost:5173")
os.environ.setdefault("SIGHTENGINE_API_USER", "test-user")
os.environ.setdefault("SIGHTENGINE_API_SECRET", "test-secret")

from typing import Any, Dict, List, Tuple  # noqa: E402

import pytest  # noqa: E402
from fakeredis import aioredis as fake_aioredis  # noqa: E402

from config import cache  # noqa: E402
from core.notifier import ProgressNotifier  # noqa: E402
from repository.video_repository import VideoRepository  # noqa: E402


@pytest.fixture
async def fake_redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    cache._client = client
    try:
        yield client
    finally:
        cache._client = None
        await client.flushall()
        await client.aclose()


@pytest.fixture
def videos(fake_redis) -> VideoRepository:
    return VideoRepository()


class RecordingNotifier(ProgressNotifier):
    """Keeps every published event in memory instead of using pub/sub."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def publish(self, channel_key, payload) -> int:
        self.events.append((channel_key, dict(payload)))
        return 1

    def payloads(self, channel_key: str) -> List[Dict[str, Any]]:
        return [p for c, p in self.events if c == channel_key]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def source_video(tmp_path) -> str:
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    path = uploads / "video-1700000000000-abcd1234.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return str(path)


@pytest.fixture
async def job(videos, source_video):
    return await videos.create(
        title="Holiday clip",
        filename=os.path.basename(source_video),
        path=source_video,
        size=os.path.getsize(source_video),
        mimetype="video/mp4",
    )
