import json
import asyncio
import logging
from typing import AsyncGenerator
from matrix_ai.config.settings import settings
from matrix_ai.core.redis_client import get_redis_client

logger = logging.getLogger(__name__)

EVENT_CREATED = "EVENT_CREATED"
EVENT_STATUS_CHANGED = "EVENT_STATUS_CHANGED"


class EventBus:
    @staticmethod
    async def publish_update(kind: str, payload: dict):
        """Fire-and-forget; a Redis outage never fails the request that triggered it."""
        message = json.dumps({"type": kind, "payload": payload}, default=str)
        try:
            client = await get_redis_client()
            await client.publish(settings.PUBSUB_CHANNEL, message)
        except Exception as e:
            logger.warning(f"Failed to publish {kind} to Redis: {e}")

    @staticmethod
    async def subscribe_to_updates() -> AsyncGenerator[dict, None]:
        client = await get_redis_client()
        pubsub = client.pubsub()

        async def subscribe():
            try:
                await pubsub.subscribe(settings.PUBSUB_CHANNEL)
                return True
            except Exception:
                await asyncio.sleep(5)
                return False

        # Attempt connection twice
        if not await subscribe() and not await subscribe():
            raise ConnectionError("Cannot establish connection to Redis Pub/Sub.")

        try:
            while True:
                try:
                    # 15s timeout for heartbeat
                    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=15.0)
                    if message and message.get('type') == 'message':
                        yield json.loads(message['data'])
                    else:
                        yield {"type": "HEARTBEAT"}
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.warning(f"Redis connection lost: {e}. Attempting to reconnect...")
                    if not await subscribe():
                        await asyncio.sleep(5)
                        if not await subscribe():
                            raise ConnectionError("Failed to reconnect to Redis Pub/Sub.")
        finally:
            try:
                await pubsub.unsubscribe(settings.PUBSUB_CHANNEL)
            except Exception as e:
                logger.debug(f"Pub/Sub unsubscribe failed: {e}")
