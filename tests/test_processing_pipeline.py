# tests/test_processing_pipeline.py
import asyncio
import logging
import os

import pytest

from config.settings import settings
from core import frame_sampler, media_tools
from core.entities import FrameSample, ToolResult
from core.notifier import channel_for
from core.processing_pipeline import VideoPipeline
from model.video import Sensitivity, VideoStatus
from repository.video_repository import VideoRepository
from util.errors import ClassifierUnavailable, ProbeFailed, SamplingFailed, StoreUnavailable

CLEAN = {"status": "success", "nudity": {"safe": 0.98}, "weapon": 0.01, "gore": {"prob": 0.02}}
GORY = {"status": "success", "nudity": {"safe": 0.95}, "gore": {"prob": 0.81}}


class ScriptedClassifier:
    """Returns (or raises) one scripted outcome per call, in order."""

    def __init__(self, *outcomes):
        self._outcomes = list(outcomes)
        self.calls = []

    async def classify(self, image_bytes, filename="frame.png"):
        self.calls.append((filename, image_bytes))
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def fake_probe(duration=None, error=None):
    async def probe(path):
        if error is not None:
            raise error
        return duration

    return probe


def fake_sampler(calls=None, error=None):
    async def sample(source_path, count, output_dir, duration=None):
        if calls is not None:
            calls.append({"source": source_path, "count": count, "duration": duration})
        os.makedirs(output_dir, exist_ok=True)
        stem = os.path.splitext(os.path.basename(source_path))[0]
        span = duration or 8.0
        samples = []
        for i, ts in enumerate(frame_sampler.frame_timestamps(span, count)):
            path = os.path.join(output_dir, frame_sampler.frame_filename(stem, ts))
            with open(path, "wb") as fh:
                fh.write(f"frame-{i}".encode())
            samples.append(FrameSample(index=i, path=path, timestamp=ts))
            if error is not None and i == 1:
                raise error
        return samples

    return sample


@pytest.fixture
def frames_dir(tmp_path):
    return str(tmp_path / "uploads" / "temp_frames")


def make_pipeline(videos, notifier, classifier, frames_dir, **kw):
    kw.setdefault("probe", fake_probe(20.0))
    kw.setdefault("sample", fake_sampler())
    return VideoPipeline(
        videos,
        notifier,
        classifier,
        frame_count=3,
        frames_dir=frames_dir,
        tick_step=10,
        tick_interval=0,
        **kw,
    )


async def test_successful_run_completes_and_cleans_up(videos, notifier, job, frames_dir):
    classifier = ScriptedClassifier(CLEAN, CLEAN, CLEAN)
    sample_calls = []
    pipeline = make_pipeline(
        videos, notifier, classifier, frames_dir, sample=fake_sampler(sample_calls)
    )

    assert await pipeline.run(job) == Sensitivity.safe

    stored = await videos.get(job.id)
    assert stored.status == VideoStatus.completed
    assert stored.sensitivity == Sensitivity.safe
    assert stored.duration == 20.0
    assert sample_calls == [{"source": job.path, "count": 3, "duration": 20.0}]
    assert [name for name, _ in classifier.calls] == [
        "video-1700000000000-abcd1234-at-5-seconds.png",
        "video-1700000000000-abcd1234-at-10-seconds.png",
        "video-1700000000000-abcd1234-at-15-seconds.png",
    ]
    assert notifier.payloads(channel_for(job.id)) == [
        {"progress": 100, "status": "completed", "sensitivity": "safe"}
    ]
    # no frame outlives classification; the emptied sampling dir is gone
    assert not os.path.exists(frames_dir)


async def test_one_unsafe_frame_flags_the_video(videos, notifier, job, frames_dir):
    pipeline = make_pipeline(
        videos, notifier, ScriptedClassifier(CLEAN, GORY, CLEAN), frames_dir
    )

    assert await pipeline.run(job) == Sensitivity.flagged
    assert (await videos.get(job.id)).sensitivity == Sensitivity.flagged


async def test_classifier_errors_fail_open_per_frame(videos, notifier, job, frames_dir):
    classifier = ScriptedClassifier(
        ClassifierUnavailable("down"), GORY, ClassifierUnavailable("down")
    )
    pipeline = make_pipeline(videos, notifier, classifier, frames_dir)

    assert await pipeline.run(job) == Sensitivity.flagged
    assert len(classifier.calls) == 3
    assert not os.path.exists(frames_dir)


async def test_unreachable_classifier_yields_safe_completion(videos, notifier, job, frames_dir):
    classifier = ScriptedClassifier(*[ClassifierUnavailable("unreachable")] * 3)
    pipeline = make_pipeline(videos, notifier, classifier, frames_dir)

    assert await pipeline.run(job) == Sensitivity.safe
    stored = await videos.get(job.id)
    assert (stored.status, stored.sensitivity) == (VideoStatus.completed, Sensitivity.safe)


async def test_probe_failure_is_not_fatal(videos, notifier, job, frames_dir):
    sample_calls = []
    pipeline = make_pipeline(
        videos,
        notifier,
        ScriptedClassifier(CLEAN, CLEAN, CLEAN),
        frames_dir,
        probe=fake_probe(error=ProbeFailed(job.path, "no duration")),
        sample=fake_sampler(sample_calls),
    )

    assert await pipeline.run(job) == Sensitivity.safe
    stored = await videos.get(job.id)
    assert stored.status == VideoStatus.completed
    assert stored.duration is None
    assert sample_calls[0]["duration"] is None


async def test_sampling_failure_marks_failed_and_removes_leftovers(
    videos, notifier, job, frames_dir
):
    classifier = ScriptedClassifier()
    pipeline = make_pipeline(
        videos,
        notifier,
        classifier,
        frames_dir,
        sample=fake_sampler(error=SamplingFailed(job.path, "ffmpeg exit=1")),
    )

    assert await pipeline.run(job) is None

    stored = await videos.get(job.id)
    assert stored.status == VideoStatus.failed
    assert stored.sensitivity == Sensitivity.pending
    assert classifier.calls == []
    assert notifier.payloads(channel_for(job.id)) == [{"progress": 100, "status": "failed"}]
    assert frame_sampler.discover_frames(frames_dir, "video-1700000000000-abcd1234") == []
    assert not os.path.exists(frames_dir)


async def test_missing_source_file_marks_failed(videos, notifier, job, frames_dir):
    os.remove(job.path)
    pipeline = make_pipeline(videos, notifier, ScriptedClassifier(), frames_dir)

    assert await pipeline.run(job) is None
    assert (await videos.get(job.id)).status == VideoStatus.failed


async def test_final_store_failure_propagates(videos, notifier, job, frames_dir):
    class BrokenStore(VideoRepository):
        async def update(self, video_id, **fields):
            raise StoreUnavailable("write failed: ConnectionError")

    pipeline = make_pipeline(
        BrokenStore(), notifier, ScriptedClassifier(CLEAN, CLEAN, CLEAN), frames_dir
    )

    with pytest.raises(StoreUnavailable):
        await pipeline.run(job)
    assert notifier.payloads(channel_for(job.id)) == []
    assert not os.path.exists(frames_dir)


async def test_start_returns_immediately_and_runs_in_background(
    videos, notifier, job, frames_dir
):
    gate = asyncio.Event()

    async def slow_probe(path):
        await gate.wait()
        return 20.0

    pipeline = make_pipeline(
        videos,
        notifier,
        ScriptedClassifier(CLEAN, CLEAN, CLEAN),
        frames_dir,
        probe=slow_probe,
    )

    assert await pipeline.start(job) is True
    assert pipeline.is_active(job.id)
    assert (await videos.get(job.id)).status == VideoStatus.processing

    # a second start for the same video is ignored while the first is active
    assert await pipeline.start(job) is False

    gate.set()
    await pipeline.shutdown()

    assert not pipeline.is_active(job.id)
    stored = await videos.get(job.id)
    assert stored.status == VideoStatus.completed
    events = notifier.payloads(channel_for(job.id))
    assert {"progress": 100, "status": "completed", "sensitivity": "safe"} in events


async def test_ticker_is_decoupled_from_real_processing(videos, notifier, job, frames_dir):
    gate = asyncio.Event()

    async def blocked_probe(path):
        await gate.wait()
        return 20.0

    pipeline = make_pipeline(
        videos,
        notifier,
        ScriptedClassifier(CLEAN, CLEAN, CLEAN),
        frames_dir,
        probe=blocked_probe,
    )
    await pipeline.start(job)

    # let the ticker run to 100 while processing is still blocked
    for _ in range(50):
        await asyncio.sleep(0)
    ticks = [p for p in notifier.payloads(channel_for(job.id)) if p["status"] == "processing"]
    assert [p["progress"] for p in ticks] == list(range(10, 101, 10))
    assert (await videos.get(job.id)).status == VideoStatus.processing

    gate.set()
    await pipeline.shutdown()
    assert (await videos.get(job.id)).status == VideoStatus.completed


async def test_unhandled_store_failure_is_logged_by_done_callback(
    notifier, job, frames_dir, caplog
):
    class BrokenStore(VideoRepository):
        async def update(self, video_id, **fields):
            raise StoreUnavailable("write failed")

    pipeline = make_pipeline(
        BrokenStore(), notifier, ScriptedClassifier(CLEAN, CLEAN, CLEAN), frames_dir
    )

    with caplog.at_level(logging.ERROR, logger="core.processing_pipeline"):
        await pipeline.start(job)
        await pipeline.shutdown()
        await asyncio.sleep(0)

    assert any("pipeline.run.unhandled" in r.getMessage() for r in caplog.records)
    assert not pipeline.is_active(job.id)


def ffmpeg_tools(slow_stem=None, delay=0.05):
    """run_tool stand-in: ffprobe has no duration, ffmpeg writes the requested frame."""

    async def run_tool(args, timeout=None):
        if args[0] == settings.FFPROBE_PATH:
            return ToolResult(0, "N/A\n", "")
        if slow_stem is not None and slow_stem in args[args.index("-i") + 1]:
            await asyncio.sleep(delay)
        with open(args[-1], "wb") as fh:
            fh.write(b"\x89PNG")
        return ToolResult(0, "", "")

    return run_tool


async def test_run_completes_when_duration_cannot_be_probed(
    monkeypatch, videos, notifier, job, frames_dir
):
    monkeypatch.setattr(media_tools, "run_tool", ffmpeg_tools())
    classifier = ScriptedClassifier(CLEAN)
    pipeline = make_pipeline(
        videos,
        notifier,
        classifier,
        frames_dir,
        probe=media_tools.probe_duration,
        sample=frame_sampler.sample_frames,
    )

    assert await pipeline.run(job) == Sensitivity.safe

    stored = await videos.get(job.id)
    assert stored.status == VideoStatus.completed
    assert stored.duration is None
    assert [name for name, _ in classifier.calls] == [
        "video-1700000000000-abcd1234-at-0-seconds.png"
    ]
    assert not os.path.exists(frames_dir)


async def test_concurrent_runs_do_not_disturb_each_other(
    monkeypatch, videos, notifier, job, source_video, frames_dir
):
    slow_path = os.path.join(os.path.dirname(source_video), "video-1700000000001-ef567890.mp4")
    with open(slow_path, "wb") as fh:
        fh.write(b"\x00\x00\x00\x18ftypmp42")
    slow_job = await videos.create(
        title="Slow clip",
        filename=os.path.basename(slow_path),
        path=slow_path,
        size=os.path.getsize(slow_path),
        mimetype="video/mp4",
    )
    monkeypatch.setattr(
        media_tools, "run_tool", ffmpeg_tools(slow_stem="video-1700000000001-ef567890")
    )
    pipeline = make_pipeline(
        videos,
        notifier,
        ScriptedClassifier(*[CLEAN] * 6),
        frames_dir,
        sample=frame_sampler.sample_frames,
    )

    verdicts = await asyncio.gather(pipeline.run(job), pipeline.run(slow_job))

    assert verdicts == [Sensitivity.safe, Sensitivity.safe]
    for video_id in (job.id, slow_job.id):
        assert (await videos.get(video_id)).status == VideoStatus.completed
    assert not os.path.exists(frames_dir)


async def test_shutdown_waits_for_cancelled_tickers(videos, notifier, job, frames_dir):
    pipeline = make_pipeline(
        videos, notifier, ScriptedClassifier(CLEAN, CLEAN, CLEAN), frames_dir
    )
    pipeline._tick_interval = 60
    await pipeline.start(job)
    ticker = pipeline._tickers[job.id]

    await pipeline.shutdown()

    assert ticker.done
    assert ticker.task.cancelled()
    assert job.id not in pipeline._tickers
