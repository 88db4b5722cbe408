# repository/video_repository.py
import logging
import time
from typing import Any, Final, Optional
from uuid import uuid4
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError
from config.cache import get_redis
from model.video import Sensitivity, VideoJob, VideoStatus
from repository.namespaces import VIDEOS
from util.errors import InvalidTransition, StoreUnavailable

KEY_PREFIX: Final[str] = VIDEOS
logger = logging.getLogger(__name__)

_MUTABLE_FIELDS: Final[frozenset[str]] = frozenset(
    {"title", "description", "status", "sensitivity", "duration"}
)


def _to_mapping(fields: dict[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for k, v in fields.items():
        if v is None:
            continue
        out[k] = v.value if hasattr(v, "value") else str(v)
    return out


class VideoRepository:
    """
    Redis-backed video records, one hash per video keyed by id.

    Every write is a single HSET (last writer wins). Redis failures surface as
    StoreUnavailable; rule violations (status regressions, verdict changes,
    duration overwrites) surface as InvalidTransition before anything is written.
    """

    @staticmethod
    async def _client() -> Redis:
        try:
            return await get_redis()
        except RedisError as e:
            raise StoreUnavailable(f"redis unreachable: {type(e).__name__}") from e

    @staticmethod
    def _key(video_id: str) -> str:
        return f"{KEY_PREFIX}:{video_id}"

    # ---------------- Core CRUD ----------------

    async def create(
        self,
        *,
        title: str,
        filename: str,
        path: str,
        size: int,
        mimetype: str,
        description: str | None = None,
        status: VideoStatus = VideoStatus.processing,
    ) -> VideoJob:
        now = int(time.time())
        job = VideoJob(
            id=str(uuid4()),
            title=title,
            description=description,
            filename=filename,
            path=path,
            size=size,
            mimetype=mimetype,
            status=status,
            sensitivity=Sensitivity.pending,
            createdAt=now,
            updatedAt=now,
        )
        await self._write(job.id, job.model_dump())
        logger.info("store.create video=%s status=%s", job.id, job.status.value)
        return job

    async def get(self, video_id: str) -> Optional[VideoJob]:
        if not video_id:
            return None
        r = await self._client()
        try:
            h = await r.hgetall(self._key(video_id))
        except RedisError as e:
            raise StoreUnavailable(f"read failed: {type(e).__name__}") from e
        if not h:
            return None
        try:
            return VideoJob.model_validate(h)
        except ValidationError:
            logger.error("store.get.corrupt video=%s", video_id)
            return None

    async def update(self, video_id: str, **fields: Any) -> Optional[VideoJob]:
        """
        Apply `fields` to an existing record in one write.
        Returns the updated job, or None when the record does not exist.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"immutable or unknown fields: {sorted(unknown)}")

        current = await self.get(video_id)
        if current is None:
            return None

        self._check_transition(current, fields)
        merged = current.model_dump()
        merged.update({k: v for k, v in fields.items() if v is not None})
        merged["updatedAt"] = int(time.time())
        try:
            updated = VideoJob.model_validate(merged)
        except ValidationError as e:
            raise InvalidTransition(str(e)) from e

        await self._write(video_id, {**fields, "updatedAt": updated.updatedAt})
        return updated

    async def delete(self, video_id: str) -> int:
        if not video_id:
            return 0
        r = await self._client()
        try:
            return int(await r.delete(self._key(video_id)))
        except RedisError as e:
            raise StoreUnavailable(f"delete failed: {type(e).__name__}") from e

    # ---------------- Helpers ----------------

    async def _write(self, video_id: str, fields: dict[str, Any]) -> None:
        r = await self._client()
        try:
            await r.hset(self._key(video_id), mapping=_to_mapping(fields))
        except RedisError as e:
            raise StoreUnavailable(f"write failed: {type(e).__name__}") from e

    @staticmethod
    def _check_transition(current: VideoJob, fields: dict[str, Any]) -> None:
        status = fields.get("status")
        if status is not None and not current.status.can_advance_to(
            VideoStatus(status)
        ):
            raise InvalidTransition(
                f"status {current.status.value} -> {VideoStatus(status).value}"
            )

        sensitivity = fields.get("sensitivity")
        if (
            sensitivity is not None
            and current.sensitivity != Sensitivity.pending
            and Sensitivity(sensitivity) != current.sensitivity
        ):
            raise InvalidTransition(
                f"sensitivity already {current.sensitivity.value}"
            )

        duration = fields.get("duration")
        if duration is not None and current.duration is not None:
            raise InvalidTransition("duration already set")
