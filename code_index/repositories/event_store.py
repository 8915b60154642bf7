"""Redis-backed event bus for sweep events.

Events are JSON documents on one Redis list: LPUSH to publish, BRPOP to
consume, so delivery is FIFO.
"""

from __future__ import annotations

import logging

from code_index.clients.redis import RedisClient
from code_index.schemas.events import Event, event_adapter

__all__ = [
    'RedisEventStore',
]

logger = logging.getLogger(__name__)

EVENTS_KEY = 'code_index:events'


class RedisEventStore:
    """EventPublisher plus the consuming side used by the runtime."""

    def __init__(self, redis: RedisClient) -> None:
        self._redis = redis

    async def publish(self, event: Event) -> None:
        await self._redis.lpush(EVENTS_KEY, event.model_dump_json())
        logger.debug(f'[EVENT] Published {event.type} last_processed_id={event.data.last_processed_id}')

    async def next_event(self, *, timeout: float) -> Event | None:
        """Block up to timeout seconds for the next event."""
        raw = await self._redis.brpop(EVENTS_KEY, timeout)
        if raw is None:
            return None
        return event_adapter.validate_json(raw)
