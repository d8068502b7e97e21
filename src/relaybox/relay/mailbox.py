"""Single-slot, per-key store for records nobody was listening for.

Uses Redis when MAILBOX_BACKEND=redis and REDIS_URL is configured, otherwise
keeps entries in process memory.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

Record = dict[str, Any]


@dataclass
class MailboxEntry:
    key: str
    record: Record
    inserted_at: float = field(default_factory=time.monotonic)


class MailboxStore(Protocol):
    async def put(self, key: str, record: Record, inserted_at: float | None = None) -> None: ...

    async def take(self, key: str) -> MailboxEntry | None: ...

    async def sweep(self, ttl: float, now: float | None = None) -> int: ...

    async def count(self) -> int: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory store (single worker)
# ---------------------------------------------------------------------------

class InMemoryMailboxStore:
    """Last write wins: a second put for the same key replaces the first."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, MailboxEntry] = {}

    async def put(self, key: str, record: Record, inserted_at: float | None = None) -> None:
        if key in self._entries:
            logger.debug("Overwriting pending record for %s", key)
        self._entries[key] = MailboxEntry(
            key=key,
            record=record,
            inserted_at=self._clock() if inserted_at is None else inserted_at,
        )

    async def take(self, key: str) -> MailboxEntry | None:
        return self._entries.pop(key, None)

    async def sweep(self, ttl: float, now: float | None = None) -> int:
        """Drop every entry older than ttl seconds. Returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [k for k, e in self._entries.items() if now - e.inserted_at > ttl]
        for key in expired:
            logger.info("Removing stale data for %s", key)
            del self._entries[key]
        return len(expired)

    async def count(self) -> int:
        return len(self._entries)

    async def close(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries


# ---------------------------------------------------------------------------
# Redis-backed store (shared across workers)
# ---------------------------------------------------------------------------

_INDEX = "mbox:index"


class RedisMailboxStore:
    """Records live under mbox:<key> with a key TTL; a sorted set indexes
    keys by insertion time for counting and sweeping."""

    def __init__(self, redis_url: str, ttl: float) -> None:
        from redis import asyncio as aioredis

        self._redis = aioredis.Redis.from_url(redis_url, decode_responses=True)
        self._ttl = ttl

    async def ping(self) -> None:
        await self._redis.ping()
        logger.info("Mailbox store connected to Redis")

    @staticmethod
    def _rkey(key: str) -> str:
        return f"mbox:{key}"

    async def put(self, key: str, record: Record, inserted_at: float | None = None) -> None:
        now = time.time()
        inserted_at = now if inserted_at is None else inserted_at
        remaining = self._ttl - (now - inserted_at)
        if remaining <= 0:
            logger.info("Not storing already-expired data for %s", key)
            return

        value = json.dumps({"record": record, "inserted_at": inserted_at})
        pipe = self._redis.pipeline(transaction=True)
        pipe.set(self._rkey(key), value, px=max(1, int(remaining * 1000)))
        pipe.zadd(_INDEX, {key: inserted_at})
        await pipe.execute()

    async def take(self, key: str) -> MailboxEntry | None:
        # GETDEL is atomic: two workers polling the same key cannot both receive it
        pipe = self._redis.pipeline(transaction=True)
        pipe.getdel(self._rkey(key))
        pipe.zrem(_INDEX, key)
        value, _ = await pipe.execute()
        if value is None:
            return None
        stored = json.loads(value)
        return MailboxEntry(key=key, record=stored["record"], inserted_at=stored["inserted_at"])

    async def sweep(self, ttl: float, now: float | None = None) -> int:
        # The records themselves expire in Redis; only the index needs pruning
        now = time.time() if now is None else now
        return await self._redis.zremrangebyscore(_INDEX, "-inf", now - ttl)

    async def count(self) -> int:
        return await self._redis.zcount(_INDEX, time.time() - self._ttl, "+inf")

    async def close(self) -> None:
        await self._redis.aclose()


async def create_mailbox_store(backend: str, redis_url: str, ttl: float) -> MailboxStore:
    if backend == "redis":
        if not redis_url:
            logger.warning("MAILBOX_BACKEND=redis but REDIS_URL is empty, using in-memory mailbox")
        else:
            store = RedisMailboxStore(redis_url, ttl)
            try:
                await store.ping()
                return store
            except Exception:
                logger.warning("Failed to connect to Redis, falling back to in-memory mailbox", exc_info=True)
                await store.close()
    return InMemoryMailboxStore()
