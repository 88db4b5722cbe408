# service/video_service.py
import logging
import os
from typing import AsyncIterator, BinaryIO
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool
from config.settings import settings
from core.notifier import ProgressNotifier
from core.processing_pipeline import VideoPipeline
from core.streaming import make_progress_stream
from model.video import VideoJob
from repository.video_repository import VideoRepository
from util import functions
from util.constants import ALLOWED_VIDEO_EXTENSIONS
from util.enums import ErrorMessage
from util.errors import AppError, StoreUnavailable

logger = logging.getLogger(__name__)

CHUNK_BYTES = 1024 * 1024


def _copy_capped(src: BinaryIO, dest_path: str, max_bytes: int) -> int:
    """Stream `src` to `dest_path`; removes the partial file and raises past `max_bytes`."""
    written = 0
    with open(dest_path, "wb") as out:
        while True:
            chunk = src.read(CHUNK_BYTES)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                break
            out.write(chunk)
    if written > max_bytes:
        os.remove(dest_path)
        raise AppError.of(ErrorMessage.FILE_TOO_LARGE)
    return written


class VideoService:
    def __init__(
        self,
        videos: VideoRepository,
        notifier: ProgressNotifier,
        pipeline: VideoPipeline,
        *,
        upload_dir: str = settings.UPLOAD_DIR,
        max_bytes: int = settings.MAX_FILE_MB * 1024 * 1024,
    ) -> None:
        self._videos = videos
        self._notifier = notifier
        self._pipeline = pipeline
        self._upload_dir = upload_dir
        self._max_bytes = max_bytes

    @staticmethod
    def validate_upload(file: UploadFile | None) -> str:
        """Returns the lower-cased extension of an acceptable video upload."""
        if file is None or not file.filename:
            raise AppError.of(ErrorMessage.NO_FILE)
        ext = os.path.splitext(file.filename)[1].lower()
        mimetype = (file.content_type or "").lower()
        if ext not in ALLOWED_VIDEO_EXTENSIONS or not mimetype.startswith("video/"):
            logger.warning("upload.rejected ext=%s mimetype=%s", ext, mimetype)
            raise AppError.of(ErrorMessage.VIDEOS_ONLY)
        return ext

    async def accept_upload(
        self, file: UploadFile, *, title: str, description: str | None = None
    ) -> VideoJob:
        """
        Store the file under a unique timestamped name and create its record in
        `processing`. Processing itself is started separately via start_processing().
        Logs: video id, stored name and byte size (no payloads).
        """
        self.validate_upload(file)
        os.makedirs(self._upload_dir, exist_ok=True)
        stored_name = functions.upload_filename(file.filename or "")
        dest = os.path.join(self._upload_dir, stored_name)

        try:
            size = await run_in_threadpool(_copy_capped, file.file, dest, self._max_bytes)
        except OSError:
            logger.error("upload.write.error name=%s", stored_name, exc_info=True)
            try:
                os.remove(dest)
            except FileNotFoundError:
                pass
            raise AppError.of(ErrorMessage.INTERNAL_ERROR)

        try:
            job = await self._videos.create(
                title=title,
                description=description,
                filename=stored_name,
                path=dest,
                size=size,
                mimetype=file.content_type or "application/octet-stream",
            )
        except StoreUnavailable:
            logger.error("upload.persist.error name=%s", stored_name)
            os.remove(dest)
            raise AppError.of(ErrorMessage.STORE_UNAVAILABLE)

        logger.info("upload.ok video=%s name=%s bytes=%d", job.id, stored_name, size)
        return job

    async def start_processing(self, job: VideoJob) -> None:
        await self._pipeline.start(job)

    async def get_video(self, video_id: str) -> VideoJob:
        try:
            job = await self._videos.get(video_id)
        except StoreUnavailable:
            raise AppError.of(ErrorMessage.STORE_UNAVAILABLE)
        if job is None:
            raise AppError.of(ErrorMessage.VIDEO_NOT_FOUND)
        return job

    async def delete_video(self, video_id: str) -> None:
        """Source file first, then the record. Refused while a run is active."""
        job = await self.get_video(video_id)
        if self._pipeline.is_active(video_id):
            raise AppError.of(ErrorMessage.VIDEO_BUSY)

        try:
            os.remove(job.path)
        except FileNotFoundError:
            logger.warning("delete.source.missing video=%s", video_id)

        try:
            await self._videos.delete(video_id)
        except StoreUnavailable:
            raise AppError.of(ErrorMessage.STORE_UNAVAILABLE)
        logger.info("delete.ok video=%s", video_id)

    async def stream_progress(self, video_id: str) -> AsyncIterator[bytes]:
        # Validate before the response starts so unknown ids get a proper 404
        await self.get_video(video_id)
        return make_progress_stream(
            video_id=video_id, videos=self._videos, notifier=self._notifier
        )
