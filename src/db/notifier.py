"""Fan-out of refreshed token records to live subscribers over Redis pub/sub."""

import json

from loguru import logger
from redis.asyncio import Redis

DEFAULT_CHANNEL = "tokens"


class RedisTokenNotifier:
    """Publishes ``{"tokenAddress": ...}`` on a channel. Delivery is best effort."""

    def __init__(self, redis: Redis, channel: str = DEFAULT_CHANNEL) -> None:
        self._redis = redis
        self._channel = channel

    @classmethod
    def from_url(cls, redis_url: str, channel: str = DEFAULT_CHANNEL) -> "RedisTokenNotifier":
        return cls(Redis.from_url(redis_url, decode_responses=True), channel)

    async def publish(self, token_address: str) -> None:
        try:
            payload = json.dumps({"tokenAddress": token_address})
            await self._redis.publish(self._channel, payload)
        except Exception as e:
            logger.debug(f"[NOTIFY] Redis publish failed for {token_address[:12]}: {e}")

    async def close(self) -> None:
        await self._redis.aclose()
