"""
Order Service / イベント発行

Redis Pub/Sub の order_events チャネルにイベントを発行する。

発行はトランザクションのコミット後に行う。注文は既に永続化されているため、
発行の失敗は呼び出し元に返さずログに残す。
Redis Pub/Sub は fire-and-forget なので購読者がいなければ失われる。
"""

import json
import logging

import redis.asyncio as aioredis
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ORDER_EVENTS_CHANNEL = "order_events"


class EventPublisher:
    def __init__(self, redis: aioredis.Redis, channel: str = ORDER_EVENTS_CHANNEL) -> None:
        self.redis = redis
        self.channel = channel

    async def publish(self, event: BaseModel) -> None:
        event_type = type(event).__name__
        try:
            await self.redis.publish(
                self.channel,
                json.dumps(
                    {
                        "event_type": event_type,
                        "data": event.model_dump(mode="json"),
                    },
                    default=str,
                ),
            )
        except aioredis.RedisError:
            logger.exception("Failed to publish %s", event_type)
