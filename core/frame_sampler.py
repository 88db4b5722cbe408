# core/frame_sampler.py
import logging
import os
from typing import List
from config.settings import settings
from core import media_tools
from core.entities import FrameSample
from util import functions
from util.errors import ProbeFailed, SamplingFailed
from util.timing import timed

logger = logging.getLogger(__name__)

FRAME_EXT = ".png"


def frame_timestamps(duration: float, count: int) -> List[float]:
    """
    Evenly spaced offsets strictly inside the timeline: count=3 -> 25%, 50%, 75%.
    """
    if count <= 0 or duration <= 0:
        return []
    step = duration / (count + 1)
    return [round(step * (i + 1), 3) for i in range(count)]


def frame_filename(stem: str, timestamp: float) -> str:
    return f"{stem}-at-{functions.format_seconds(timestamp)}-seconds{FRAME_EXT}"


def discover_frames(output_dir: str, stem: str) -> List[str]:
    """Frame files in `output_dir` that belong to the source with this stem."""
    if not os.path.isdir(output_dir):
        return []
    prefix = f"{stem}-at-"
    return sorted(
        os.path.join(output_dir, name)
        for name in os.listdir(output_dir)
        if name.startswith(prefix) and name.endswith(FRAME_EXT)
    )


def discard_frame(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("frames.discard.error path=%s err=%s", path, type(e).__name__)


def remove_dir_if_empty(path: str) -> bool:
    try:
        if os.path.isdir(path) and not os.listdir(path):
            os.rmdir(path)
            return True
    except OSError as e:
        # another job may have just written into it
        logger.debug("frames.rmdir.skip path=%s err=%s", path, type(e).__name__)
    return False


async def sample_frames(
    source_path: str,
    count: int,
    output_dir: str,
    duration: float | None = None,
) -> List[FrameSample]:
    """
    Write up to `count` PNG stills taken at evenly spaced offsets of `source_path`
    into `output_dir` (created if absent), named `<stem>-at-<seconds>-seconds.png`.

    Uses `duration` when the caller already probed it, otherwise probes itself.
    With no usable duration only the first frame (0s) is taken.
    Raises SamplingFailed only when ffmpeg itself fails.
    Leftover files from an earlier run with the same stem are overwritten.
    """
    if duration is None:
        try:
            duration = await media_tools.probe_duration(source_path)
        except ProbeFailed as e:
            logger.warning(
                "frames.duration.unknown path=%s reason=%s", source_path, e.reason
            )

    stem = functions.file_stem(source_path)
    samples: List[FrameSample] = []
    offsets = frame_timestamps(duration, count) if duration else []
    if not offsets and count > 0:
        offsets = [0.0]

    with timed(logger, "frames.sample", stem=stem, count=len(offsets)):
        for i, ts in enumerate(offsets):
            # recreated per frame: a finished job may have pruned an empty parent
            os.makedirs(output_dir, exist_ok=True)
            out_path = os.path.join(output_dir, frame_filename(stem, ts))
            args = [
                settings.FFMPEG_PATH,
                "-hide_banner",
                "-loglevel", "error",
                "-y",
                "-ss", functions.format_seconds(ts),
                "-i", source_path,
                "-frames:v", "1",
                out_path,
            ]
            try:
                result = await media_tools.run_tool(args)
            except FileNotFoundError as e:
                raise SamplingFailed(source_path, "ffmpeg not found") from e
            except TimeoutError as e:
                raise SamplingFailed(source_path, f"ffmpeg timed out at {ts}s") from e
            if not result.ok:
                raise SamplingFailed(
                    source_path,
                    f"ffmpeg exit={result.returncode} at {ts}s "
                    f"{result.stderr.strip()[:200]}",
                )
            # ffmpeg exits 0 without output when seeking past the last keyframe
            if os.path.isfile(out_path):
                samples.append(FrameSample(index=i, path=out_path, timestamp=ts))
            else:
                logger.warning("frames.sample.missing stem=%s ts=%s", stem, ts)

    logger.info("frames.sampled stem=%s count=%d", stem, len(samples))
    return samples
