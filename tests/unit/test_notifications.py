import json

import pytest
from unittest.mock import AsyncMock

from ridematch.services.notifications import Notice, RedisNotificationSink, dispatch


@pytest.mark.asyncio
class TestDispatch:
    async def test_sends_every_notice(self):
        sink = AsyncMock()
        notices = [Notice("p1", "t", "b", {"type": "X"}), Notice("p2", "t", "b")]
        assert await dispatch(sink, notices) == 2
        sink.notify.assert_any_await("p1", "t", "b", {"type": "X"})
        sink.notify.assert_any_await("p2", "t", "b", {})

    async def test_failure_is_logged_and_skipped(self, caplog):
        sink = AsyncMock()
        sink.notify.side_effect = [ConnectionError("down"), None]
        sent = await dispatch(sink, [Notice("p1", "t", "b"), Notice("p2", "t", "b")])
        assert sent == 1
        assert sink.notify.await_count == 2
        assert "Notification to p1 failed" in caplog.text

    async def test_nothing_to_send(self):
        sink = AsyncMock()
        assert await dispatch(sink, []) == 0
        sink.notify.assert_not_awaited()


@pytest.mark.asyncio
class TestRedisNotificationSink:
    async def test_publishes_on_recipient_channel(self):
        redis = AsyncMock()
        redis.publish.return_value = 1
        await RedisNotificationSink(redis).notify("driver-1", "3 Passengers Waiting", "Tap to accept", {"count": 3})

        channel, raw = redis.publish.await_args.args
        message = json.loads(raw)
        assert channel == "notifications:driver-1"
        assert message["title"] == "3 Passengers Waiting"
        assert message["payload"] == {"count": 3}
        assert "sent_at" in message
