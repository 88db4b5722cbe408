# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    TEST = "test"
    PROD = "prod"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    NO_FILE = ErrorInfo("No file uploaded", status.HTTP_400_BAD_REQUEST)
    VIDEOS_ONLY = ErrorInfo("Videos only!", status.HTTP_400_BAD_REQUEST)
    FILE_TOO_LARGE = ErrorInfo(
        "File too large", status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    )
    VIDEO_NOT_FOUND = ErrorInfo("Video not found", status.HTTP_404_NOT_FOUND)
    VIDEO_BUSY = ErrorInfo(
        "Video is still being processed", status.HTTP_409_CONFLICT
    )
    STORE_UNAVAILABLE = ErrorInfo(
        "Storage unavailable", status.HTTP_503_SERVICE_UNAVAILABLE
    )
    INTERNAL_ERROR = ErrorInfo("Internal Error", status.HTTP_502_BAD_GATEWAY)
