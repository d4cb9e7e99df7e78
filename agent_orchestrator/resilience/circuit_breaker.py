"""
Per-tenant circuit breaker guarding the model backend.

CLOSED    normal operation; N consecutive failures (a timeout counts) -> OPEN
OPEN      fail fast with the fallback; after the cool-down -> HALF_OPEN
HALF_OPEN exactly one trial call; success -> CLOSED (counter reset),
          failure -> OPEN. Concurrent calls during the trial get the fallback.

State decisions for a tenant are serialized by a per-tenant lock, and the
record is written through a ``BreakerStore`` so it survives restarts.
The guarded call itself runs outside the lock.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from agent_orchestrator.config import BreakerConfig, settings
from agent_orchestrator.resilience.store import (
    BreakerRecord,
    BreakerState,
    BreakerStore,
    InMemoryBreakerStore,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

REASON_OPEN = "open"
REASON_TRIAL_BUSY = "half_open_busy"
REASON_TIMEOUT = "timeout"
REASON_ERROR = "error"

TransitionListener = Callable[[str, BreakerState, BreakerState], None]


@dataclass
class BreakerMetrics:
    executions: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    fallbacks: int = 0


class CircuitBreaker:
    """Failure isolation for one volatile dependency, tracked per tenant."""

    def __init__(
        self,
        config: Optional[BreakerConfig] = None,
        store: Optional[BreakerStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or settings.breaker
        self._store = store if store is not None else InMemoryBreakerStore()
        self._clock = clock
        self._records: dict[str, BreakerRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._trials: set[str] = set()
        self._metrics: dict[str, BreakerMetrics] = {}
        self._listeners: list[TransitionListener] = []

    # ------------------------------------------------------------------ #
    # Inspection
    # ------------------------------------------------------------------ #

    def get_state(self, tenant_id: str) -> BreakerState:
        return self._record(tenant_id).state

    def get_failure_count(self, tenant_id: str) -> int:
        return self._record(tenant_id).consecutive_failures

    def get_metrics(self, tenant_id: str) -> dict:
        snapshot = asdict(self._metrics.setdefault(tenant_id, BreakerMetrics()))
        record = self._record(tenant_id)
        snapshot["state"] = record.state.value
        snapshot["consecutive_failures"] = record.consecutive_failures
        return snapshot

    def add_listener(self, listener: TransitionListener) -> None:
        """Register a callback invoked as ``listener(tenant_id, old, new)`` on every transition."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------ #
    # Guarded execution
    # ------------------------------------------------------------------ #

    async def execute(
        self,
        tenant_id: str,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[str], T],
        timeout: Optional[float] = None,
    ) -> T:
        """Run ``operation`` under the tenant's breaker with a hard timeout.

        Returns the operation's result, or ``fallback(reason)`` when the
        circuit is open, a half-open trial is already running, the call
        times out or it raises. Never propagates the operation's errors.
        """
        metrics = self._metrics.setdefault(tenant_id, BreakerMetrics())
        metrics.executions += 1

        reason, is_trial = await self._admit(tenant_id)
        if reason is not None:
            metrics.fallbacks += 1
            logger.info("Breaker for tenant %s short-circuited (%s)", tenant_id, reason)
            return fallback(reason)

        limit = timeout if timeout is not None else self._config.call_timeout_sec
        try:
            result = await asyncio.wait_for(operation(), timeout=limit)
        except asyncio.TimeoutError:
            metrics.timeouts += 1
            metrics.failures += 1
            metrics.fallbacks += 1
            logger.warning("Guarded call for tenant %s exceeded %.1fs", tenant_id, limit)
            await self._on_failure(tenant_id, is_trial)
            return fallback(REASON_TIMEOUT)
        except asyncio.CancelledError:
            if is_trial:
                self._trials.discard(tenant_id)
            raise
        except Exception:
            metrics.failures += 1
            metrics.fallbacks += 1
            logger.exception("Guarded call for tenant %s failed", tenant_id)
            await self._on_failure(tenant_id, is_trial)
            return fallback(REASON_ERROR)

        metrics.successes += 1
        await self._on_success(tenant_id, is_trial)
        return result

    # ------------------------------------------------------------------ #
    # Operator controls
    # ------------------------------------------------------------------ #

    async def force_open(self, tenant_id: str) -> None:
        async with self._lock(tenant_id):
            record = self._record(tenant_id)
            if record.state != BreakerState.OPEN:
                self._transition(tenant_id, record, BreakerState.OPEN)

    async def force_close(self, tenant_id: str) -> None:
        async with self._lock(tenant_id):
            record = self._record(tenant_id)
            self._trials.discard(tenant_id)
            if record.state != BreakerState.CLOSED:
                self._transition(tenant_id, record, BreakerState.CLOSED)
            elif record.consecutive_failures:
                record.consecutive_failures = 0
                self._store.save(tenant_id, record)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _lock(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        return lock

    def _record(self, tenant_id: str) -> BreakerRecord:
        record = self._records.get(tenant_id)
        if record is None:
            record = self._store.load(tenant_id) or BreakerRecord(last_transition_at=self._clock())
            if record.state == BreakerState.HALF_OPEN:
                # A trial cannot survive a restart; resume from OPEN.
                record.state = BreakerState.OPEN
                record.opened_at = record.opened_at or record.last_transition_at
            self._records[tenant_id] = record
        return record

    async def _admit(self, tenant_id: str) -> tuple[Optional[str], bool]:
        async with self._lock(tenant_id):
            record = self._record(tenant_id)
            if record.state == BreakerState.OPEN:
                opened_at = record.opened_at or record.last_transition_at
                if self._clock() - opened_at < self._config.cooldown_sec:
                    return REASON_OPEN, False
                self._transition(tenant_id, record, BreakerState.HALF_OPEN)

            if record.state == BreakerState.HALF_OPEN:
                if tenant_id in self._trials:
                    return REASON_TRIAL_BUSY, False
                self._trials.add(tenant_id)
                return None, True

            return None, False

    async def _on_success(self, tenant_id: str, is_trial: bool) -> None:
        async with self._lock(tenant_id):
            record = self._record(tenant_id)
            if is_trial:
                self._trials.discard(tenant_id)
                if record.state == BreakerState.HALF_OPEN:
                    self._transition(tenant_id, record, BreakerState.CLOSED)
                    return
            if record.state == BreakerState.CLOSED and record.consecutive_failures:
                record.consecutive_failures = 0
                self._store.save(tenant_id, record)

    async def _on_failure(self, tenant_id: str, is_trial: bool) -> None:
        async with self._lock(tenant_id):
            record = self._record(tenant_id)
            record.consecutive_failures += 1
            if is_trial:
                self._trials.discard(tenant_id)
                if record.state == BreakerState.HALF_OPEN:
                    self._transition(tenant_id, record, BreakerState.OPEN)
                    return
            if (
                record.state == BreakerState.CLOSED
                and record.consecutive_failures >= self._config.failure_threshold
            ):
                self._transition(tenant_id, record, BreakerState.OPEN)
                return
            self._store.save(tenant_id, record)

    def _transition(self, tenant_id: str, record: BreakerRecord, new_state: BreakerState) -> None:
        old_state = record.state
        now = self._clock()
        record.state = new_state
        record.last_transition_at = now
        if new_state == BreakerState.OPEN:
            record.opened_at = now
        elif new_state == BreakerState.CLOSED:
            record.opened_at = None
            record.consecutive_failures = 0
        self._store.save(tenant_id, record)

        if new_state == BreakerState.OPEN:
            logger.warning(
                "Breaker OPEN for tenant %s after %d consecutive failure(s)",
                tenant_id, record.consecutive_failures,
            )
        else:
            logger.info("Breaker %s -> %s for tenant %s", old_state.value, new_state.value, tenant_id)

        for listener in self._listeners:
            try:
                listener(tenant_id, old_state, new_state)
            except Exception:
                logger.exception("Breaker transition listener failed")
