# core/processing_pipeline.py
import asyncio
import logging
import os
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional
from config.settings import settings
from core import frame_sampler, media_tools
from core.classifier_client import ContentClassifierClient
from core.entities import FrameSample
from core.notifier import ProgressNotifier, channel_for
from core.progress_ticker import ProgressTicker
from core.safety import aggregate, frame_triggers
from model.video import Sensitivity, VideoJob, VideoStatus
from repository.video_repository import VideoRepository
from util import functions
from util.errors import ClassifierUnavailable, PipelineError, ProbeFailed
from util.timing import timed
from util.types import FrameResult

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str], Awaitable[float]]
SampleFn = Callable[..., Awaitable[List[FrameSample]]]


class VideoPipeline:
    """
    Drives uploaded videos from `processing` to a terminal status.

    start(job) spawns two unrelated background tasks per video:
      1) a ProgressTicker publishing simulated progress (cosmetic only)
      2) run(job): probe -> sample -> classify each frame -> aggregate -> persist -> notify

    At most one run per video id is active at a time. Runs cannot be cancelled.
    """

    def __init__(
        self,
        videos: VideoRepository,
        notifier: ProgressNotifier,
        classifier: ContentClassifierClient,
        *,
        frame_count: int = settings.FRAME_COUNT,
        frames_dir: str = settings.frames_dir,
        tick_step: int = settings.PROGRESS_STEP,
        tick_interval: float = settings.PROGRESS_INTERVAL_SECONDS,
        probe: ProbeFn = media_tools.probe_duration,
        sample: SampleFn = frame_sampler.sample_frames,
    ) -> None:
        self._videos = videos
        self._notifier = notifier
        self._classifier = classifier
        self._frame_count = frame_count
        self._frames_dir = frames_dir
        self._tick_step = tick_step
        self._tick_interval = tick_interval
        self._probe = probe
        self._sample = sample
        self._runs: Dict[str, asyncio.Task] = {}
        self._tickers: Dict[str, ProgressTicker] = {}

    # ---------------- Scheduling ----------------

    def is_active(self, video_id: str) -> bool:
        task = self._runs.get(video_id)
        return task is not None and not task.done()

    async def start(self, job: VideoJob) -> bool:
        """
        Schedule processing for `job` and return at once.
        Returns False (and schedules nothing) if a run for this video is active.
        """
        if self.is_active(job.id):
            logger.warning("pipeline.start.duplicate video=%s", job.id)
            return False

        ticker = ProgressTicker(
            self._notifier,
            channel_for(job.id),
            step=self._tick_step,
            interval=self._tick_interval,
        )
        self._tickers[job.id] = ticker
        ticker.start().add_done_callback(partial(self._on_ticker_done, job.id, ticker))

        task = asyncio.create_task(self.run(job), name=f"pipeline:{job.id}")
        self._runs[job.id] = task
        task.add_done_callback(partial(self._on_run_done, job.id))
        logger.info("pipeline.start video=%s stem=%s", job.id, functions.file_stem(job.path))
        return True

    async def shutdown(self) -> None:
        """Stop tickers and wait for in-flight runs to finish."""
        tickers = list(self._tickers.values())
        for ticker in tickers:
            ticker.cancel()
        ticker_tasks = [t.task for t in tickers if t.task is not None]
        if ticker_tasks:
            await asyncio.gather(*ticker_tasks, return_exceptions=True)
        pending = [t for t in self._runs.values() if not t.done()]
        if pending:
            logger.info("pipeline.shutdown.wait runs=%d", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    def _on_ticker_done(self, video_id: str, ticker: ProgressTicker, _task: asyncio.Task) -> None:
        if self._tickers.get(video_id) is ticker:
            del self._tickers[video_id]

    def _on_run_done(self, video_id: str, task: asyncio.Task) -> None:
        # Top-level handler: the only failures reaching here come from the final store update
        if self._runs.get(video_id) is task:
            del self._runs[video_id]
        if task.cancelled():
            logger.warning("pipeline.run.cancelled video=%s", video_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "pipeline.run.unhandled video=%s err=%s",
                video_id,
                type(exc).__name__,
                exc_info=exc,
            )

    # ---------------- Processing sequence ----------------

    async def run(self, job: VideoJob) -> Optional[Sensitivity]:
        """
        Process one video to completion. Returns the verdict, or None when the
        run aborted and the job was marked failed. Store failures while
        persisting the verdict propagate.
        """
        with timed(logger, "pipeline.run", video=job.id):
            if not os.path.isfile(job.path):
                logger.error("pipeline.source.missing video=%s", job.id)
                await self._fail(job, "source file missing")
                return None

            duration = await self._probe_duration(job)

            try:
                sensitivity = await self._screen(job, duration)
            except Exception as e:
                logger.error(
                    "pipeline.abort video=%s err=%s msg=%s", job.id, type(e).__name__, e
                )
                await self._fail(job, str(e))
                return None

            await self._complete(job, sensitivity, duration)
        return sensitivity

    async def _probe_duration(self, job: VideoJob) -> Optional[float]:
        try:
            duration = await self._probe(job.path)
        except ProbeFailed as e:
            # Non-fatal: duration simply stays unset
            logger.warning("pipeline.probe.failed video=%s reason=%s", job.id, e.reason)
            return None
        logger.info("pipeline.probe.ok video=%s duration=%.3f", job.id, duration)
        return duration

    def _job_frames_dir(self, job: VideoJob) -> str:
        # <frames_dir>/<stem>/, private to one video
        return os.path.join(self._frames_dir, functions.file_stem(job.path))

    def _prune_frame_dirs(self, job_dir: str) -> None:
        if frame_sampler.remove_dir_if_empty(job_dir):
            frame_sampler.remove_dir_if_empty(self._frames_dir)

    async def _screen(self, job: VideoJob, duration: Optional[float]) -> Sensitivity:
        job_dir = self._job_frames_dir(job)
        samples = await self._sample(
            job.path, self._frame_count, job_dir, duration=duration
        )
        results: List[FrameResult] = []
        try:
            # Sequential on purpose: one in-flight classifier call per video
            for sample in samples:
                results.append(await self._classify_frame(job.id, sample))
        finally:
            for sample in samples:
                frame_sampler.discard_frame(sample.path)
            self._prune_frame_dirs(job_dir)

        classified = sum(1 for r in results if r is not None)
        sensitivity = aggregate(results)
        logger.info(
            "pipeline.verdict video=%s frames=%d classified=%d sensitivity=%s",
            job.id,
            len(samples),
            classified,
            sensitivity.value,
        )
        return sensitivity

    async def _classify_frame(self, video_id: str, sample: FrameSample) -> FrameResult:
        """Fail open per frame: any error yields None. The file is always removed."""
        try:
            with open(sample.path, "rb") as fh:
                image = fh.read()
            scores = await self._classifier.classify(
                image, filename=os.path.basename(sample.path)
            )
        except ClassifierUnavailable as e:
            logger.warning(
                "pipeline.classify.unavailable video=%s frame=%d err=%s",
                video_id,
                sample.index,
                e,
            )
            return None
        except OSError as e:
            logger.warning(
                "pipeline.frame.unreadable video=%s frame=%d err=%s",
                video_id,
                sample.index,
                type(e).__name__,
            )
            return None
        finally:
            frame_sampler.discard_frame(sample.path)

        hits = frame_triggers(scores)
        logger.info(
            "pipeline.classify.ok video=%s frame=%d ts=%s hits=%s",
            video_id,
            sample.index,
            sample.timestamp,
            ",".join(hits) or "-",
        )
        return scores

    async def _complete(
        self, job: VideoJob, sensitivity: Sensitivity, duration: Optional[float]
    ) -> None:
        updated = await self._videos.update(
            job.id,
            status=VideoStatus.completed,
            sensitivity=sensitivity,
            duration=duration,
        )
        if updated is None:
            logger.warning("pipeline.complete.record_gone video=%s", job.id)
            return
        await self._notifier.publish(
            channel_for(job.id),
            {
                "progress": 100,
                "status": VideoStatus.completed.value,
                "sensitivity": sensitivity.value,
            },
        )
        logger.info("pipeline.completed video=%s sensitivity=%s", job.id, sensitivity.value)

    async def _fail(self, job: VideoJob, reason: str) -> None:
        job_dir = self._job_frames_dir(job)
        for leftover in frame_sampler.discover_frames(job_dir, functions.file_stem(job.path)):
            frame_sampler.discard_frame(leftover)
        self._prune_frame_dirs(job_dir)

        try:
            updated = await self._videos.update(job.id, status=VideoStatus.failed)
        except PipelineError as e:
            logger.error(
                "pipeline.fail.persist_error video=%s err=%s", job.id, type(e).__name__
            )
            return
        if updated is None:
            logger.warning("pipeline.fail.record_gone video=%s", job.id)
            return
        await self._notifier.publish(
            channel_for(job.id),
            {"progress": 100, "status": VideoStatus.failed.value},
        )
        logger.info("pipeline.failed video=%s reason=%s", job.id, reason)
