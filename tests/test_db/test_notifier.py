"""Tests for the Redis pub/sub token notifier."""

import json
from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError

from src.db.notifier import RedisTokenNotifier


class TestRedisTokenNotifier:
    async def test_publishes_token_address(self):
        redis = AsyncMock()
        notifier = RedisTokenNotifier(redis, channel="radar")

        await notifier.publish("Mint111")

        redis.publish.assert_awaited_once()
        channel, payload = redis.publish.await_args.args
        assert channel == "radar"
        assert json.loads(payload) == {"tokenAddress": "Mint111"}

    async def test_publish_failure_swallowed(self):
        redis = AsyncMock()
        redis.publish.side_effect = RedisConnectionError("down")
        await RedisTokenNotifier(redis).publish("Mint111")

    async def test_close(self):
        redis = AsyncMock()
        await RedisTokenNotifier(redis).close()
        redis.aclose.assert_awaited_once()
