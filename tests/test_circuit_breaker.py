"""Tests for the per-tenant circuit breaker, its persistence and the degraded-mode replies."""

import asyncio

import pytest

from agent_orchestrator.config import BreakerConfig
from agent_orchestrator.resilience.circuit_breaker import (
    REASON_ERROR,
    REASON_OPEN,
    REASON_TIMEOUT,
    REASON_TRIAL_BUSY,
    CircuitBreaker,
)
from agent_orchestrator.resilience.fallback import APOLOGY, fallback_text
from agent_orchestrator.resilience.store import (
    BreakerRecord,
    BreakerState,
    InMemoryBreakerStore,
    JsonFileBreakerStore,
)

from tests.conftest import make_tenant

TENANT = "tenant-a"


def _config(**overrides) -> BreakerConfig:
    values = {"failure_threshold": 3, "cooldown_sec": 30.0, "call_timeout_sec": 1.0, "state_file": ""}
    values.update(overrides)
    return BreakerConfig(**values)


async def ok():
    return "ok"


async def boom():
    raise RuntimeError("model backend down")


def fallback(reason: str) -> str:
    return f"fallback:{reason}"


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(_config(), clock=clock)


async def _trip(breaker: CircuitBreaker, tenant_id: str = TENANT, times: int = 3) -> None:
    for _ in range(times):
        assert await breaker.execute(tenant_id, boom, fallback) == f"fallback:{REASON_ERROR}"


class TestClosed:
    @pytest.mark.asyncio
    async def test_passes_result_through(self, breaker):
        assert await breaker.execute(TENANT, ok, fallback) == "ok"
        assert breaker.get_state(TENANT) == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_failure_serves_fallback(self, breaker):
        assert await breaker.execute(TENANT, boom, fallback) == "fallback:error"
        assert breaker.get_failure_count(TENANT) == 1
        assert breaker.get_state(TENANT) == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, breaker):
        await _trip(breaker, times=2)
        await breaker.execute(TENANT, ok, fallback)
        assert breaker.get_failure_count(TENANT) == 0

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, breaker):
        async def slow():
            await asyncio.sleep(1)
            return "late"

        result = await breaker.execute(TENANT, slow, fallback, timeout=0.01)
        assert result == f"fallback:{REASON_TIMEOUT}"
        assert breaker.get_failure_count(TENANT) == 1
        assert breaker.get_metrics(TENANT)["timeouts"] == 1


class TestOpening:
    @pytest.mark.asyncio
    async def test_threshold_opens(self, breaker):
        await _trip(breaker)
        assert breaker.get_state(TENANT) == BreakerState.OPEN

    @pytest.mark.asyncio
    async def test_open_fails_fast_without_calling(self, breaker):
        await _trip(breaker)
        calls = []

        async def tracked():
            calls.append(1)
            return "ok"

        assert await breaker.execute(TENANT, tracked, fallback) == f"fallback:{REASON_OPEN}"
        assert calls == []

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, breaker):
        await _trip(breaker)
        assert await breaker.execute("tenant-b", ok, fallback) == "ok"
        assert breaker.get_state("tenant-b") == BreakerState.CLOSED


class TestHalfOpen:
    @pytest.mark.asyncio
    async def test_cooldown_then_successful_trial_closes(self, breaker, clock):
        await _trip(breaker)
        clock.advance(31)
        assert await breaker.execute(TENANT, ok, fallback) == "ok"
        assert breaker.get_state(TENANT) == BreakerState.CLOSED
        assert breaker.get_failure_count(TENANT) == 0

    @pytest.mark.asyncio
    async def test_still_open_before_cooldown(self, breaker, clock):
        await _trip(breaker)
        clock.advance(29)
        assert await breaker.execute(TENANT, ok, fallback) == f"fallback:{REASON_OPEN}"

    @pytest.mark.asyncio
    async def test_failed_trial_reopens(self, breaker, clock):
        await _trip(breaker)
        clock.advance(31)
        assert await breaker.execute(TENANT, boom, fallback) == "fallback:error"
        assert breaker.get_state(TENANT) == BreakerState.OPEN
        assert await breaker.execute(TENANT, ok, fallback) == f"fallback:{REASON_OPEN}"

    @pytest.mark.asyncio
    async def test_single_trial_call(self, breaker, clock):
        await _trip(breaker)
        clock.advance(31)
        started = asyncio.Event()
        release = asyncio.Event()

        async def trial():
            started.set()
            await release.wait()
            return "trial"

        task = asyncio.create_task(breaker.execute(TENANT, trial, fallback))
        await started.wait()
        assert breaker.get_state(TENANT) == BreakerState.HALF_OPEN
        assert await breaker.execute(TENANT, ok, fallback) == f"fallback:{REASON_TRIAL_BUSY}"

        release.set()
        assert await task == "trial"
        assert breaker.get_state(TENANT) == BreakerState.CLOSED


class TestObservability:
    @pytest.mark.asyncio
    async def test_listeners_see_transitions(self, breaker, clock):
        seen = []
        breaker.add_listener(lambda tenant, old, new: seen.append((tenant, old, new)))
        await _trip(breaker)
        clock.advance(31)
        await breaker.execute(TENANT, ok, fallback)
        assert seen == [
            (TENANT, BreakerState.CLOSED, BreakerState.OPEN),
            (TENANT, BreakerState.OPEN, BreakerState.HALF_OPEN),
            (TENANT, BreakerState.HALF_OPEN, BreakerState.CLOSED),
        ]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_breaker(self, breaker):
        def bad_listener(tenant, old, new):
            raise ValueError("listener bug")

        breaker.add_listener(bad_listener)
        await _trip(breaker)
        assert breaker.get_state(TENANT) == BreakerState.OPEN

    @pytest.mark.asyncio
    async def test_metrics(self, breaker):
        await breaker.execute(TENANT, ok, fallback)
        await _trip(breaker)
        await breaker.execute(TENANT, ok, fallback)
        metrics = breaker.get_metrics(TENANT)
        assert metrics["executions"] == 5
        assert metrics["successes"] == 1
        assert metrics["failures"] == 3
        assert metrics["fallbacks"] == 4
        assert metrics["state"] == "open"


class TestOperatorControls:
    @pytest.mark.asyncio
    async def test_force_open_and_close(self, breaker):
        await breaker.force_open(TENANT)
        assert await breaker.execute(TENANT, ok, fallback) == f"fallback:{REASON_OPEN}"
        await breaker.force_close(TENANT)
        assert await breaker.execute(TENANT, ok, fallback) == "ok"


class TestPersistence:
    @pytest.mark.asyncio
    async def test_open_state_survives_restart(self, tmp_path, clock):
        path = tmp_path / "breaker.json"
        first = CircuitBreaker(_config(), JsonFileBreakerStore(str(path)), clock=clock)
        await _trip(first)

        second = CircuitBreaker(_config(), JsonFileBreakerStore(str(path)), clock=clock)
        assert second.get_state(TENANT) == BreakerState.OPEN
        assert await second.execute(TENANT, ok, fallback) == f"fallback:{REASON_OPEN}"

    @pytest.mark.asyncio
    async def test_half_open_resumes_as_open(self, clock):
        store = InMemoryBreakerStore()
        store.save(TENANT, BreakerRecord(BreakerState.HALF_OPEN, 3, clock.now - 5, clock.now - 40))
        breaker = CircuitBreaker(_config(), store, clock=clock)
        assert breaker.get_state(TENANT) == BreakerState.OPEN

    def test_unreadable_file_starts_closed(self, tmp_path):
        path = tmp_path / "breaker.json"
        path.write_text("{not json", encoding="utf-8")
        assert JsonFileBreakerStore(str(path)).load(TENANT) is None

    def test_record_round_trip(self):
        record = BreakerRecord(BreakerState.OPEN, 4, 10.0, 10.0)
        assert BreakerRecord.from_dict(record.to_dict()) == record


class TestFallbackText:
    def test_hours_answered_from_config(self):
        text = fallback_text(make_tenant(), "hours")
        assert text.startswith("Our hours are Monday: 12:00-22:00; Saturday: 12:00-23:00.")

    def test_location_answered_from_config(self):
        assert "Av. Reforma 120" in fallback_text(make_tenant(), "location")

    def test_other_intents_apologise(self):
        assert fallback_text(make_tenant(), "booking") == APOLOGY["en"]

    def test_unknown_tenant_apologises(self):
        assert fallback_text(None, "hours") == APOLOGY["en"]

    def test_spanish(self):
        text = fallback_text(make_tenant(locale="es"), "hours")
        assert text.startswith("Nuestro horario es lunes: 12:00-22:00")

    def test_missing_data_apologises(self):
        assert fallback_text(make_tenant(address=None), "location") == APOLOGY["en"]
