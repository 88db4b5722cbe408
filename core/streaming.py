# core/streaming.py
import json
import logging
from typing import AsyncIterator, Dict, Final
from core.notifier import ProgressNotifier, channel_for
from model.api import ProgressEvent
from model.video import VideoStatus
from repository.video_repository import VideoRepository

LINE_SEP: Final[str] = "\n"
logger = logging.getLogger(__name__)


def ndjson_line(obj: Dict[str, object]) -> bytes:
    return (json.dumps(obj, separators=(",", ":")) + LINE_SEP).encode("utf-8")


def _is_terminal(payload: Dict[str, object]) -> bool:
    try:
        return VideoStatus(payload.get("status")).is_terminal
    except ValueError:
        return False


async def make_progress_stream(
    *, video_id: str, videos: VideoRepository, notifier: ProgressNotifier
) -> AsyncIterator[bytes]:
    """
    NDJSON progress feed for one video:
      - subscribe first so nothing published after the snapshot read is lost
      - emit one snapshot line from the stored record
      - relay live events until a completed/failed event arrives
    Terminal records end the stream right after the snapshot.
    """
    async with notifier.subscribe(channel_for(video_id)) as events:
        job = await videos.get(video_id)
        if job is None:
            yield ndjson_line({"error": "Video not found"})
            return

        snap = ProgressEvent.snapshot(job)
        yield ndjson_line(snap.model_dump(mode="json", exclude_none=True))
        if job.status.is_terminal:
            return

        logger.info("stream.live.start video=%s", video_id)
        async for payload in events:
            yield ndjson_line(payload)
            if _is_terminal(payload):
                break
        logger.info("stream.live.done video=%s", video_id)
