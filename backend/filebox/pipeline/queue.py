"""Redis list-backed job queue with at-least-once delivery.

A reserved job is moved atomically to ``queue:<name>:processing`` and stays
there until acked. On startup a worker calls ``recover()`` to push back jobs a
crashed worker never acked, so a job may run more than once and handlers must
be idempotent.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from redis.asyncio import Redis

log = logging.getLogger(__name__)

THUMBNAIL_QUEUE = "thumbnails"
WELCOME_QUEUE = "welcome"


class JobQueue:
    """One named queue of JSON payloads."""

    def __init__(self, redis: Redis, name: str) -> None:
        self._redis = redis
        self.name = name
        self.key = f"queue:{name}"
        self.processing_key = f"{self.key}:processing"

    async def enqueue(self, payload: Dict[str, Any]) -> None:
        """Append payload; the producer never waits for processing."""
        await self._redis.rpush(self.key, json.dumps(payload, sort_keys=True))
        log.debug("Enqueued job on %s: %s", self.name, payload)

    async def reserve(self, timeout: float = 0) -> Optional[Tuple[str, Any]]:
        """Wait up to timeout seconds for a job; return (raw, payload) or None.

        timeout 0 polls without blocking.

        A payload that is not valid JSON is returned as None so the handler
        can fail that job without stopping the consumer.
        """
        if timeout > 0:
            raw = await self._redis.blmove(self.key, self.processing_key, timeout, "LEFT", "RIGHT")
        else:
            raw = await self._redis.lmove(self.key, self.processing_key, "LEFT", "RIGHT")
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            log.warning("Discarding malformed job on %s", self.name)
            payload = None
        return raw, payload

    async def ack(self, raw: str) -> None:
        """Remove a finished job (completed or failed) from the processing list."""
        await self._redis.lrem(self.processing_key, 1, raw)

    async def recover(self) -> int:
        """Move unacked jobs back onto the queue. Returns how many were moved."""
        moved = 0
        while await self._redis.lmove(self.processing_key, self.key, "RIGHT", "LEFT") is not None:
            moved += 1
        if moved:
            log.info("Recovered %d unacked job(s) on %s", moved, self.name)
        return moved

    async def size(self) -> int:
        return await self._redis.llen(self.key)
