# repository/namespaces.py
from typing import Final

ROOT: Final[str] = "streamsafe"

VIDEOS: Final[str] = f"{ROOT}:videos"
PROGRESS: Final[str] = f"{ROOT}:progress"  # pub/sub channels, one per video
