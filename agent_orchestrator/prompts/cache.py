"""
Compiled-prompt cache.

Entries are replaced whole, never patched. Concurrent misses for the same
key share one compilation (single flight). Invalidating a key or a tenant
also detaches any compilation still running for it, so its result is
returned to the callers already waiting but never stored.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PromptCacheEntry(Generic[T]):
    key: str
    tenant_id: str
    value: T
    expires_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    compiles: int = 0
    invalidations: int = 0


@dataclass(eq=False)
class _Flight:
    tenant_id: str
    future: "asyncio.Future[Any]"


class PromptCache:
    """TTL cache with single-flight compilation."""

    def __init__(self, ttl_sec: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_sec
        self._clock = clock
        self._entries: dict[str, PromptCacheEntry[Any]] = {}
        self._inflight: dict[str, _Flight] = {}
        self._detached: set[_Flight] = set()
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Return a live entry's value; expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    async def get_or_compile(
        self,
        key: str,
        tenant_id: str,
        compile_fn: Callable[[], Awaitable[T]],
        cacheable: Optional[Callable[[T], bool]] = None,
    ) -> T:
        """Return the cached value for ``key`` or compile it once.

        ``cacheable`` can veto storing a result (e.g. a degraded build);
        the value is still returned to every waiting caller.
        """
        value = self.get(key)
        if value is not None:
            self.stats.hits += 1
            return value

        flight = self._inflight.get(key)
        if flight is not None:
            self.stats.hits += 1
            return await asyncio.shield(flight.future)

        self.stats.misses += 1
        self.stats.compiles += 1
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        flight = _Flight(tenant_id=tenant_id, future=future)
        self._inflight[key] = flight
        try:
            value = await compile_fn()
        except asyncio.CancelledError:
            # Waiters were not cancelled themselves; they get an ordinary error.
            future.set_exception(RuntimeError(f"Prompt compilation for {key} was cancelled"))
            future.exception()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved; waiters still see the exception.
            future.exception()
            raise
        finally:
            if self._inflight.get(key) is flight:
                del self._inflight[key]
            detached = flight in self._detached
            self._detached.discard(flight)

        future.set_result(value)
        if not detached and (cacheable is None or cacheable(value)):
            self._entries[key] = PromptCacheEntry(
                key=key,
                tenant_id=tenant_id,
                value=value,
                expires_at=self._clock() + self._ttl,
            )
        return value

    def invalidate(self, key: str) -> None:
        removed = self._entries.pop(key, None) is not None
        flight = self._inflight.pop(key, None)
        if flight is not None:
            self._detached.add(flight)
        if removed or flight is not None:
            self.stats.invalidations += 1
            logger.info("Prompt cache entry invalidated")

    def invalidate_tenant(self, tenant_id: str) -> int:
        """Drop every entry and detach every compilation for a tenant."""
        keys = [k for k, e in self._entries.items() if e.tenant_id == tenant_id]
        for key in keys:
            del self._entries[key]
        flights = [k for k, f in self._inflight.items() if f.tenant_id == tenant_id]
        for key in flights:
            self._detached.add(self._inflight.pop(key))
        count = len(keys) + len(flights)
        if count:
            self.stats.invalidations += count
            logger.info("Prompt cache invalidated %d item(s) for tenant %s", count, tenant_id)
        return count

    def clear(self) -> None:
        self._entries.clear()
        for flight in self._inflight.values():
            self._detached.add(flight)
        self._inflight.clear()
