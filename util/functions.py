# util/functions.py
import os
import time
from uuid import uuid4


def upload_filename(original_name: str, prefix: str = "video") -> str:
    """
    - Build the on-disk name for an accepted upload: `<prefix>-<epoch ms>-<8 hex><ext>`.
    - The stem doubles as the frame-file namespace, so it must be unique per upload.
    """
    ext = os.path.splitext(original_name or "")[1].lower()
    return f"{prefix}-{int(time.time() * 1000)}-{uuid4().hex[:8]}{ext}"


def file_stem(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def format_seconds(seconds: float) -> str:
    # 12.0 -> "12", 12.5 -> "12.5", 3.333333 -> "3.333"
    return f"{round(seconds, 3):g}"
