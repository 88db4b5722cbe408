# model/api.py
from pydantic import BaseModel, Field
from model.video import Sensitivity, VideoJob, VideoStatus


class VideoResponse(BaseModel):
    id: str
    title: str
    description: str | None = None
    filename: str
    size: int
    mimetype: str
    status: VideoStatus
    sensitivity: Sensitivity
    duration: float | None = None
    createdAt: int
    updatedAt: int

    @classmethod
    def from_job(cls, job: VideoJob) -> "VideoResponse":
        # The on-disk path stays server-side
        return cls.model_validate(job.model_dump(exclude={"path"}))


class DeleteVideoResponse(BaseModel):
    message: str = "Video removed"


class ProgressEvent(BaseModel):
    progress: int = Field(ge=0, le=100)
    status: VideoStatus
    sensitivity: Sensitivity | None = None

    @classmethod
    def snapshot(cls, job: VideoJob) -> "ProgressEvent":
        """Best current view of a stored job; terminal jobs read as 100%."""
        if job.status == VideoStatus.completed:
            return cls(progress=100, status=job.status, sensitivity=job.sensitivity)
        if job.status == VideoStatus.failed:
            return cls(progress=100, status=job.status)
        return cls(progress=0, status=job.status)
