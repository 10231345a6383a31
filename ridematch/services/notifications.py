"""
Notification sink used by the matching engine.

The engine never waits on delivery: notices are collected while a
transaction runs and handed to the sink after commit. A failing send is
logged and dropped, so it can never undo a seat allocation.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Protocol

import redis.asyncio as aioredis

from ridematch.redis_client import get_redis, publish_json

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "notifications:"


@dataclass
class Notice:
    recipient_id: str
    title: str
    body: str
    payload: dict = field(default_factory=dict)


class NotificationSink(Protocol):
    async def notify(self, recipient_id: str, title: str, body: str, payload: dict) -> None:
        ...


class RedisNotificationSink:
    """Publishes each notice on `notifications:<recipient>` for the realtime gateway."""

    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def notify(self, recipient_id: str, title: str, body: str, payload: dict) -> None:
        message = {
            "recipient_id": recipient_id,
            "title": title,
            "body": body,
            "payload": payload,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        receivers = await publish_json(self.redis, f"{CHANNEL_PREFIX}{recipient_id}", message)
        logger.debug("Notice %r to %s reached %s subscriber(s)", title, recipient_id, receivers)


async def dispatch(sink: NotificationSink, notices: Iterable[Notice]) -> int:
    """Send every notice, best effort. Returns how many were handed off."""
    sent = 0
    for notice in notices:
        try:
            await sink.notify(notice.recipient_id, notice.title, notice.body, notice.payload)
            sent += 1
        except Exception as exc:
            logger.error("Notification to %s failed: %s", notice.recipient_id, exc)
    return sent


async def get_notification_sink() -> NotificationSink:
    """FastAPI dependency: the sink request handlers hand their notices to."""
    return RedisNotificationSink(await get_redis())
