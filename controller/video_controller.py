# controller/video_controller.py
from fastapi import APIRouter, BackgroundTasks, File, Form, UploadFile, status, Depends
from fastapi.responses import StreamingResponse
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from service.video_service import VideoService
from model.api import DeleteVideoResponse, VideoResponse
from util.constants import InternalURIs
from controller.controller_dependencies import (
    get_video_service,
    enforce_max_upload_size,
)

video_router = APIRouter(tags=["videos"])

upload_limiter = RateLimiter(
    times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
)


@video_router.post(
    InternalURIs.VIDEOS,
    response_model=VideoResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(upload_limiter), Depends(enforce_max_upload_size)],
)
async def upload_video(
    background: BackgroundTasks,
    video: UploadFile = File(...),
    title: str = Form(..., min_length=1),
    description: str | None = Form(None),
    service: VideoService = Depends(get_video_service),
) -> VideoResponse:
    job = await service.accept_upload(video, title=title, description=description)
    # Runs after the 201 has been sent
    background.add_task(service.start_processing, job)
    return VideoResponse.from_job(job)


@video_router.get(InternalURIs.VIDEO, response_model=VideoResponse)
async def get_video(
    video_id: str, service: VideoService = Depends(get_video_service)
) -> VideoResponse:
    return VideoResponse.from_job(await service.get_video(video_id))


@video_router.delete(InternalURIs.VIDEO, response_model=DeleteVideoResponse)
async def delete_video(
    video_id: str, service: VideoService = Depends(get_video_service)
) -> DeleteVideoResponse:
    await service.delete_video(video_id)
    return DeleteVideoResponse()


@video_router.get(InternalURIs.VIDEO_PROGRESS)
async def stream_progress(
    video_id: str, service: VideoService = Depends(get_video_service)
):
    generator = await service.stream_progress(video_id)
    return StreamingResponse(generator, media_type="application/x-ndjson")
