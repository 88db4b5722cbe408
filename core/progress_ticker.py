# core/progress_ticker.py
import asyncio
import logging
from config.settings import settings
from core.notifier import ProgressNotifier
from model.video import VideoStatus

logger = logging.getLogger(__name__)


class ProgressTicker:
    """
    Simulated progress for one video: +step every interval until 100, then stops.

    Purely cosmetic. It never looks at the real pipeline and is never awaited by
    it, so it may reach 100 before or after processing actually finishes.
    Only a status=completed/failed event is authoritative.
    """

    def __init__(
        self,
        notifier: ProgressNotifier,
        channel_key: str,
        *,
        step: int = settings.PROGRESS_STEP,
        interval: float = settings.PROGRESS_INTERVAL_SECONDS,
    ) -> None:
        if step <= 0:
            raise ValueError("step must be positive")
        self._notifier = notifier
        self._channel = channel_key
        self._step = step
        self._interval = interval
        self._task: asyncio.Task | None = None
        self.progress = 0

    async def run(self) -> None:
        while self.progress < 100:
            await asyncio.sleep(self._interval)
            self.progress = min(100, self.progress + self._step)
            await self._notifier.publish(
                self._channel,
                {"progress": self.progress, "status": VideoStatus.processing.value},
            )
        logger.debug("ticker.done channel=%s", self._channel)

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"ticker:{self._channel}")
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()
