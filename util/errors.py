# util/errors.py
from fastapi import HTTPException, status

from util.enums import ErrorMessage


class AppError(HTTPException):
    # Flow: raise AppError to short-circuit with a typed status & message.
    def __init__(
        self, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
    ) -> None:
        super().__init__(status_code=http_status, detail=message)

    @classmethod
    def of(cls, error: ErrorMessage) -> "AppError":
        return cls(error.value.message, error.value.http_status)


class PipelineError(Exception):
    """Base for failures raised inside the background video pipeline."""


class ProbeFailed(PipelineError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Duration probe failed for {path}: {reason}")


class SamplingFailed(PipelineError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Frame sampling failed for {path}: {reason}")


class ClassifierUnavailable(PipelineError):
    pass


class StoreUnavailable(PipelineError):
    pass


class InvalidTransition(PipelineError, ValueError):
    pass
