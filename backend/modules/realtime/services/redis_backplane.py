# backend/modules/realtime/services/redis_backplane.py

import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class RedisBackplane:
    """
    Redis pub/sub relay so every worker process sees every realtime message.

    Each restaurant has its own channel; a process ignores the copies of
    messages it published itself since it already delivered them locally.
    """

    CHANNEL_PREFIX = "realtime:restaurant:"

    def __init__(self, redis_url: str, server_id: Optional[str] = None, client=None):
        self.redis_url = redis_url
        self.server_id = server_id or str(uuid.uuid4())
        self.redis_client = client
        self.pubsub = None
        self._handler: Optional[MessageHandler] = None
        self._subscription_task: Optional[asyncio.Task] = None

    def channel_for(self, restaurant_id: int) -> str:
        return f"{self.CHANNEL_PREFIX}{restaurant_id}"

    @property
    def listening(self) -> bool:
        task = self._subscription_task
        return task is not None and not task.done()

    async def start(self, handler: MessageHandler):
        """Connect, subscribe to all restaurant channels and start relaying"""
        if self.redis_client is None:
            self.redis_client = redis.from_url(self.redis_url, decode_responses=True)

        await self.redis_client.ping()

        self._handler = handler
        self.pubsub = self.redis_client.pubsub()
        await self.pubsub.psubscribe(f"{self.CHANNEL_PREFIX}*")
        self._subscription_task = asyncio.create_task(self._handle_subscriptions())

        logger.info(f"Realtime backplane started with server ID: {self.server_id}")

    async def close(self):
        """Close Redis connections"""
        if self._subscription_task:
            self._subscription_task.cancel()
            self._subscription_task = None

        if self.pubsub:
            await self.pubsub.punsubscribe()
            await self.pubsub.aclose()

        if self.redis_client:
            await self.redis_client.aclose()

    async def publish(self, message: Dict[str, Any]):
        envelope = {"server_id": self.server_id, "message": message}
        await self.redis_client.publish(
            self.channel_for(message["restaurant_id"]), json.dumps(envelope, default=str)
        )

    async def _handle_subscriptions(self):
        """Relay every incoming message; one bad message never stops the loop"""
        try:
            async for message in self.pubsub.listen():
                if message["type"] not in ("message", "pmessage"):
                    continue
                try:
                    await self.process_raw(message["data"])
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error relaying realtime backplane message: {e}")
        except asyncio.CancelledError:
            raise
        except (RedisError, ConnectionError, OSError) as e:
            logger.error(f"Realtime backplane subscription lost: {e}")

    async def process_raw(self, data: str):
        try:
            envelope = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Dropping malformed realtime backplane message")
            return

        if not isinstance(envelope, dict) or not isinstance(envelope.get("message"), dict):
            logger.warning("Dropping realtime backplane envelope without a message")
            return

        if envelope.get("server_id") == self.server_id:
            return

        await self._handler(envelope["message"])
