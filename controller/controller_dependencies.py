# controller/controller_dependencies.py
from core.classifier_client import ContentClassifierClient
from core.notifier import ProgressNotifier
from core.processing_pipeline import VideoPipeline
from repository.video_repository import VideoRepository
from service.video_service import VideoService
from fastapi import HTTPException, Request
from config.settings import settings


def build_pipeline() -> VideoPipeline:
    """One pipeline per process; it owns the registry of in-flight runs."""
    return VideoPipeline(
        videos=VideoRepository(),
        notifier=ProgressNotifier(),
        classifier=ContentClassifierClient(),
    )


def get_pipeline(request: Request) -> VideoPipeline:
    return request.app.state.pipeline


def get_video_service(request: Request) -> VideoService:
    _pipeline = get_pipeline(request)
    _service = VideoService(VideoRepository(), ProgressNotifier(), _pipeline)
    return _service


async def enforce_max_upload_size(request: Request) -> None:
    # Fast pre-check via Content-Length if present; the copy itself enforces the hard cap
    max_bytes = settings.MAX_FILE_MB * 1024 * 1024
    cl = request.headers.get("content-length")
    if cl and cl.isdigit() and int(cl) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail={
                "ok": False,
                "error": "file_too_large",
                "maxMb": settings.MAX_FILE_MB,
            },
        )
