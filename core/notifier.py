# core/notifier.py
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict
from redis.asyncio import Redis
from redis.exceptions import RedisError
from config.cache import get_redis
from repository.namespaces import PROGRESS
from util.types import ProgressPayload

logger = logging.getLogger(__name__)


def channel_for(video_id: str) -> str:
    return f"{PROGRESS}:{video_id}"


class ProgressNotifier:
    """
    Redis pub/sub fan-out of progress events.

    Delivery is at-most-once with no replay: subscribers only see events
    published after they subscribed. Publishing never raises.
    """

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    async def publish(self, channel_key: str, payload: ProgressPayload) -> int:
        """Returns the number of subscribers reached (0 on failure)."""
        try:
            r = await self._client()
            receivers = await r.publish(
                channel_key, json.dumps(dict(payload), separators=(",", ":"))
            )
        except (RedisError, OSError) as e:
            logger.warning(
                "notify.publish.error channel=%s err=%s", channel_key, type(e).__name__
            )
            return 0
        logger.debug("notify.publish channel=%s receivers=%s", channel_key, receivers)
        return int(receivers or 0)

    @asynccontextmanager
    async def subscribe(
        self, channel_key: str
    ) -> AsyncIterator[AsyncIterator[Dict[str, Any]]]:
        """
        Usage:
          async with notifier.subscribe(channel_for(vid)) as events:
              async for payload in events:
                  ...
        The subscription is live once the block is entered.
        """
        r = await self._client()
        pubsub = r.pubsub()
        await pubsub.subscribe(channel_key)
        logger.info("notify.subscribe channel=%s", channel_key)

        async def _events() -> AsyncIterator[Dict[str, Any]]:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("notify.message.malformed channel=%s", channel_key)

        try:
            yield _events()
        finally:
            try:
                await pubsub.unsubscribe(channel_key)
                await pubsub.aclose()
            except RedisError:
                logger.debug("notify.unsubscribe.error channel=%s", channel_key)
            logger.info("notify.unsubscribe channel=%s", channel_key)
