"""
Call Deadline Tracker
Redis sorted set of in-flight calls keyed by the time they should have finished
"""
import logging
import time
from typing import Optional, List, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CallDeadlineTracker:
    """
    Deadlines for dispatched calls, consumed by the watchdog.

    Key:
    - queue:call_deadlines - sorted set, member "{job_id}:{conversation_id}",
      score = unix time after which the call counts as timed out

    Stale members are harmless: the runner only acts on a deadline whose
    conversation id is still the job's current one.
    """

    DEADLINES_ZSET = "queue:call_deadlines"

    def __init__(self, redis_client=None, redis_url: str = "redis://localhost:6379"):
        self._redis = redis_client
        self._redis_url = redis_url
        self._initialized = redis_client is not None

    async def initialize(self) -> None:
        """Connect to Redis if no client was provided."""
        if self._initialized:
            return

        try:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await self._redis.ping()
            self._initialized = True
            logger.info(f"CallDeadlineTracker connected to Redis: {self._redis_url}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    @staticmethod
    def _member(job_id: str, conversation_id: str) -> str:
        return f"{job_id}:{conversation_id}"

    async def register(self, job_id: str, conversation_id: str, timeout_seconds: float) -> None:
        """Track a dispatched call that must finish within `timeout_seconds`."""
        if not self._initialized:
            await self.initialize()

        deadline = time.time() + timeout_seconds
        await self._redis.zadd(self.DEADLINES_ZSET, {self._member(job_id, conversation_id): deadline})
        logger.debug(f"Registered deadline for job {job_id} conversation {conversation_id} in {timeout_seconds}s")

    async def reschedule(self, job_id: str, conversation_id: str, deadline: float) -> None:
        """Put a popped call back with an absolute `deadline` (unix time)."""
        if not self._initialized:
            await self.initialize()

        await self._redis.zadd(self.DEADLINES_ZSET, {self._member(job_id, conversation_id): deadline})

    async def clear(self, job_id: str, conversation_id: str) -> None:
        """Forget a call whose outcome is known."""
        if not self._initialized:
            await self.initialize()

        await self._redis.zrem(self.DEADLINES_ZSET, self._member(job_id, conversation_id))

    async def pop_due(self, now: Optional[float] = None) -> List[Tuple[str, str]]:
        """
        Remove and return all calls past their deadline.

        A member is only returned by the caller whose ZREM removed it, so
        two watchdogs never expire the same call.
        """
        if not self._initialized:
            await self.initialize()

        now = now if now is not None else time.time()
        members = await self._redis.zrangebyscore(self.DEADLINES_ZSET, 0, now)

        due: List[Tuple[str, str]] = []
        for member in members:
            removed = await self._redis.zrem(self.DEADLINES_ZSET, member)
            if not removed:
                continue
            job_id, _, conversation_id = member.partition(":")
            if job_id and conversation_id:
                due.append((job_id, conversation_id))

        return due

    async def pending_count(self) -> int:
        if not self._initialized:
            await self.initialize()
        return await self._redis.zcard(self.DEADLINES_ZSET)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._initialized = False
