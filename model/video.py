# model/video.py
from enum import Enum
from pydantic import BaseModel, model_validator


class VideoStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoStatus.completed, VideoStatus.failed)

    def can_advance_to(self, target: "VideoStatus") -> bool:
        """Forward-only: pending -> processing -> completed|failed; pending -> failed."""
        if self == target:
            return not self.is_terminal
        if self.is_terminal:
            return False
        if self == VideoStatus.pending:
            return True
        return target.is_terminal


class Sensitivity(str, Enum):
    pending = "pending"
    safe = "safe"
    flagged = "flagged"


class VideoJob(BaseModel):
    id: str
    title: str
    description: str | None = None
    filename: str
    path: str
    size: int
    mimetype: str
    status: VideoStatus = VideoStatus.pending
    sensitivity: Sensitivity = Sensitivity.pending
    duration: float | None = None
    createdAt: int
    updatedAt: int

    # Verdict only exists once processing has completed
    @model_validator(mode="after")
    def _sensitivity_follows_status(self) -> "VideoJob":
        if self.status == VideoStatus.completed:
            if self.sensitivity == Sensitivity.pending:
                raise ValueError("completed video must carry a sensitivity verdict")
        elif self.sensitivity != Sensitivity.pending:
            raise ValueError(
                f"sensitivity must stay pending while status is {self.status.value}"
            )
        return self
