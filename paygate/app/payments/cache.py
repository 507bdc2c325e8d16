"""TTL cache stores backing price and billing-record caching."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, TypeVar

from redis.asyncio import Redis

T = TypeVar("T")


class CacheStore(Protocol):
    """Key/value store whose entries disappear once their TTL has elapsed."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        ...


@dataclass
class _CacheEntry:
    value: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class InMemoryCacheStore:
    """Process-local store suitable for tests and single-worker deployments."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._entries: Dict[str, _CacheEntry] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if not entry:
            return None
        if entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            return None
        return entry.value

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        if ttl <= timedelta(0):
            return
        self._entries[key] = _CacheEntry(value=value, expires_at=self._clock() + ttl)

    def clear(self) -> None:
        self._entries.clear()


class RedisCacheStore:
    """Networked store; expiry is enforced server side with ``PX``."""

    def __init__(self, client: Redis, *, prefix: str = "paygate:") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCacheStore":
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    async def get(self, key: str) -> Optional[str]:
        value = await self._client.get(self._prefix + key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        ttl_ms = int(ttl.total_seconds() * 1000)
        if ttl_ms <= 0:
            return
        await self._client.set(self._prefix + key, value, px=ttl_ms)

    async def close(self) -> None:
        await self._client.aclose()


class SingleFlight:
    """Collapses concurrent loads of the same key into one awaited task."""

    def __init__(self) -> None:
        self._inflight: Dict[str, "asyncio.Task[Any]"] = {}

    async def run(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(loader())
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def __len__(self) -> int:
        return len(self._inflight)


__all__ = ["CacheStore", "InMemoryCacheStore", "RedisCacheStore", "SingleFlight"]
