# core/media_tools.py
import asyncio
import logging
import math
from typing import Sequence
from config.settings import settings
from core.entities import ToolResult
from util.errors import ProbeFailed
from util.timing import timed

logger = logging.getLogger(__name__)


async def run_tool(args: Sequence[str], timeout: float | None = None) -> ToolResult:
    """
    Run an external media tool (ffmpeg / ffprobe) without blocking the event loop.
    Raises FileNotFoundError if the binary is missing and TimeoutError on timeout
    (the child is killed first).
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(
            proc.communicate(), timeout or settings.MEDIA_TOOL_TIMEOUT_SECONDS
        )
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise TimeoutError(f"{args[0]} timed out")
    return ToolResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
    )


async def probe_duration(path: str) -> float:
    """
    Container-level duration in seconds, via ffprobe's format section.
    Raises ProbeFailed for any tool, exit-code or parse failure.
    """
    args = [
        settings.FFPROBE_PATH,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        path,
    ]
    try:
        with timed(logger, "media.probe"):
            result = await run_tool(args)
    except FileNotFoundError as e:
        raise ProbeFailed(path, "ffprobe not found") from e
    except TimeoutError as e:
        raise ProbeFailed(path, "ffprobe timed out") from e

    if not result.ok:
        raise ProbeFailed(
            path, f"ffprobe exit={result.returncode} {result.stderr.strip()[:200]}"
        )

    raw = result.stdout.strip().splitlines()
    try:
        duration = float(raw[0]) if raw else float("nan")
    except ValueError:
        raise ProbeFailed(path, f"unparseable duration {raw[0]!r}")
    # Rejects nan, inf and zero-length containers
    if not (math.isfinite(duration) and duration > 0):
        raise ProbeFailed(path, "no duration in container")
    return duration
