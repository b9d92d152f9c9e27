"""Expiring idempotency ledger for inbound provider message ids.

Providers redeliver a callback until they get a fast acknowledgement, so the
same message id can arrive several times. The pipeline marks an id before
routing and unmarks it if routing fails, so a later legitimate retry is still
processed.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import redis.asyncio as redis_async

from flowhook.config import settings
from flowhook.logging_config import get_logger

logger = get_logger("dedup")

DEFAULT_TTL_SECONDS = 86400
REDIS_KEY_PREFIX = "flowhook:dedup:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DedupLedger(ABC):
    """Abstract ledger of processed inbound message ids."""

    backend = "abstract"

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.ttl = timedelta(seconds=ttl_seconds)

    @abstractmethod
    async def is_processed(self, message_id: str) -> bool:
        pass

    @abstractmethod
    async def mark(self, message_id: str) -> None:
        pass

    @abstractmethod
    async def try_mark(self, message_id: str) -> bool:
        """Mark the id unless already present. True if this call marked it."""
        pass

    @abstractmethod
    async def unmark(self, message_id: str) -> None:
        pass

    @abstractmethod
    async def stats(self) -> dict:
        pass


class InMemoryDedupLedger(DedupLedger):
    backend = "memory"

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], datetime] = _utcnow):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, datetime] = {}
        self._lock = asyncio.Lock()

    def _evict_expired(self, now: datetime) -> None:
        cutoff = now - self.ttl
        expired = [key for key, seen_at in self._entries.items() if seen_at <= cutoff]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Evicted expired dedup entries", extra={"context": {"count": len(expired)}})

    async def is_processed(self, message_id: str) -> bool:
        async with self._lock:
            self._evict_expired(self._clock())
            return message_id in self._entries

    async def mark(self, message_id: str) -> None:
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)
            self._entries[message_id] = now

    async def try_mark(self, message_id: str) -> bool:
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)
            if message_id in self._entries:
                return False
            self._entries[message_id] = now
            return True

    async def unmark(self, message_id: str) -> None:
        async with self._lock:
            self._entries.pop(message_id, None)

    async def stats(self) -> dict:
        async with self._lock:
            seen = list(self._entries.values())
        return {
            "count": len(seen),
            "oldest": min(seen).isoformat() if seen else None,
            "newest": max(seen).isoformat() if seen else None,
            "ttl_hours": self.ttl.total_seconds() / 3600,
            "backend": self.backend,
        }


class RedisDedupLedger(DedupLedger):
    """Ledger shared by every worker process; expiry is delegated to redis."""

    backend = "redis"

    def __init__(self, client, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], datetime] = _utcnow):
        super().__init__(ttl_seconds)
        self._client = client
        self._clock = clock

    @staticmethod
    def _key(message_id: str) -> str:
        return f"{REDIS_KEY_PREFIX}{message_id}"

    def _ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    async def is_processed(self, message_id: str) -> bool:
        return bool(await self._client.exists(self._key(message_id)))

    async def mark(self, message_id: str) -> None:
        await self._client.set(self._key(message_id), self._clock().isoformat(), ex=self._ttl_seconds())

    async def try_mark(self, message_id: str) -> bool:
        created = await self._client.set(
            self._key(message_id),
            self._clock().isoformat(),
            ex=self._ttl_seconds(),
            nx=True,
        )
        return bool(created)

    async def unmark(self, message_id: str) -> None:
        await self._client.delete(self._key(message_id))

    async def stats(self) -> dict:
        seen: list[str] = []
        async for key in self._client.scan_iter(match=f"{REDIS_KEY_PREFIX}*"):
            value = await self._client.get(key)
            if value:
                seen.append(value)
        return {
            "count": len(seen),
            "oldest": min(seen) if seen else None,
            "newest": max(seen) if seen else None,
            "ttl_hours": self.ttl.total_seconds() / 3600,
            "backend": self.backend,
        }


_ledger: Optional[DedupLedger] = None


def build_dedup_ledger(backend: Optional[str] = None) -> DedupLedger:
    backend = (backend or settings.dedup_backend).strip().lower()
    if backend == "redis":
        client = redis_async.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
        return RedisDedupLedger(client, ttl_seconds=settings.dedup_ttl_seconds)
    if backend != "memory":
        logger.warning("Unknown dedup backend, using memory", extra={"context": {"backend": backend}})
    return InMemoryDedupLedger(ttl_seconds=settings.dedup_ttl_seconds)


def get_dedup_ledger() -> DedupLedger:
    """Process-wide ledger singleton."""
    global _ledger
    if _ledger is None:
        _ledger = build_dedup_ledger()
    return _ledger
