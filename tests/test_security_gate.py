"""Tests for inbound event validation."""

import pytest

from agent_orchestrator.config import SecurityConfig
from agent_orchestrator.schemas.events import (
    SIGNATURE_HEADER,
    SOURCE_ID_HEADER,
    TIMESTAMP_HEADER,
    Channel,
    RawEvent,
)
from agent_orchestrator.security.gate import (
    REJECTED,
    EnvSecretResolver,
    SecurityGate,
    parse_timestamp,
    sign_payload,
)
from agent_orchestrator.security.rate_limiter import SlidingWindowRateLimiter

from tests.conftest import TEST_SECRET, make_body, make_raw_event

NOW = 1_700_000_000.0


@pytest.fixture
def gate(clock):
    config = SecurityConfig(
        allowed_sources=("10.0.0.0/8", "::1/128"),
        replay_window_sec=300,
        clock_skew_sec=30,
        rate_limit_requests=2,
        rate_limit_window_sec=60,
        max_body_bytes=4096,
    )
    return SecurityGate(
        secrets=lambda tenant: TEST_SECRET if tenant == "tenant-a" else None,
        config=config,
        clock=clock,
        rate_limiter=SlidingWindowRateLimiter(2, 60, clock=clock),
    )


class TestAdmission:
    def test_valid_event_admitted(self, gate):
        decision = gate.admit(make_raw_event())
        assert decision.admitted is True
        assert decision.event.tenant_id == "tenant-a"
        assert decision.event.channel == Channel.CHAT
        assert decision.event.conversation_key == "tenant-a:chat:contact-1"

    def test_prefixed_signature_accepted(self, gate):
        body = make_body()
        timestamp = str(int(NOW))
        raw = make_raw_event(
            body=body, headers={SIGNATURE_HEADER: "sha256=" + sign_payload(TEST_SECRET, timestamp, body)}
        )
        assert gate.admit(raw).admitted is True

    def test_header_names_case_insensitive(self, gate):
        body = make_body()
        timestamp = str(int(NOW))
        raw = RawEvent(
            headers={
                "Signature": sign_payload(TEST_SECRET, timestamp, body),
                "Timestamp": timestamp,
                "Source-ID": "relay",
            },
            body=body,
            remote_addr="10.1.2.3",
        )
        assert gate.admit(raw).admitted is True

    def test_millisecond_timestamp(self, gate):
        assert gate.admit(make_raw_event(timestamp=str(int(NOW * 1000)))).admitted is True

    def test_small_clock_skew_tolerated(self, gate):
        assert gate.admit(make_raw_event(timestamp=str(int(NOW + 20)))).admitted is True


class TestRejection:
    def _assert_rejected(self, gate, raw):
        decision = gate.admit(raw)
        assert decision.admitted is False
        assert decision.event is None
        assert decision.code == REJECTED

    def test_bad_signature(self, gate):
        self._assert_rejected(gate, make_raw_event(secret="wrong-secret"))

    def test_tampered_body(self, gate):
        raw = make_raw_event()
        tampered = RawEvent(raw.headers, raw.body.replace(b"open", b"shut"), raw.remote_addr)
        self._assert_rejected(gate, tampered)

    def test_stale_timestamp(self, gate):
        self._assert_rejected(gate, make_raw_event(timestamp=str(int(NOW - 301))))

    def test_future_timestamp_beyond_skew(self, gate):
        self._assert_rejected(gate, make_raw_event(timestamp=str(int(NOW + 120))))

    def test_source_not_allowed(self, gate):
        self._assert_rejected(gate, make_raw_event(remote_addr="203.0.113.9"))

    def test_unparseable_source(self, gate):
        self._assert_rejected(gate, make_raw_event(remote_addr="not-an-ip"))

    def test_missing_source_id(self, gate):
        self._assert_rejected(gate, make_raw_event(headers={SOURCE_ID_HEADER: None}))

    def test_missing_signature(self, gate):
        self._assert_rejected(gate, make_raw_event(headers={SIGNATURE_HEADER: None}))

    def test_missing_timestamp(self, gate):
        self._assert_rejected(gate, make_raw_event(headers={TIMESTAMP_HEADER: None}))

    def test_unknown_tenant(self, gate):
        self._assert_rejected(gate, make_raw_event(body=make_body(tenant_id="tenant-x")))

    def test_body_not_json(self, gate):
        self._assert_rejected(gate, make_raw_event(body=b"definitely not json"))

    def test_body_violates_contract(self, gate):
        self._assert_rejected(gate, make_raw_event(body=make_body(channel="fax")))

    def test_body_too_large(self, gate):
        self._assert_rejected(gate, make_raw_event(body=make_body(content="x" * 5000)))

    def test_non_ascii_signature(self, gate):
        self._assert_rejected(gate, make_raw_event(headers={SIGNATURE_HEADER: "é" * 64}))

    def test_deeply_nested_body(self, clock):
        roomy = SecurityGate(
            secrets=lambda tenant: TEST_SECRET,
            config=SecurityConfig(allowed_sources=("10.0.0.0/8",), max_body_bytes=1_048_576),
            clock=clock,
        )
        self._assert_rejected(roomy, make_raw_event(body=b"[" * 200_000))


class TestRateLimit:
    def test_budget_exhausted(self, gate):
        assert gate.admit(make_raw_event()).admitted
        assert gate.admit(make_raw_event()).admitted
        assert gate.admit(make_raw_event()).admitted is False

    def test_rejected_events_spend_no_budget(self, gate):
        for _ in range(3):
            assert gate.admit(make_raw_event(secret="wrong")).admitted is False
        assert gate.admit(make_raw_event()).admitted
        assert gate.admit(make_raw_event()).admitted

    def test_budget_returns_after_window(self, gate, clock):
        gate.admit(make_raw_event())
        gate.admit(make_raw_event())
        clock.advance(61)
        assert gate.admit(make_raw_event(now=clock.now)).admitted is True


class TestHelpers:
    def test_parse_epoch_seconds(self):
        assert parse_timestamp("1700000000") == 1_700_000_000.0

    def test_parse_iso(self):
        assert parse_timestamp("2023-11-14T22:13:20Z") == 1_700_000_000.0

    def test_naive_iso_rejected(self):
        assert parse_timestamp("2023-11-14T22:13:20") is None

    def test_garbage(self):
        assert parse_timestamp("yesterday") is None

    def test_env_secret_resolver(self, monkeypatch):
        monkeypatch.setenv("TENANT_SECRET_TENANT_A", "abc")
        assert EnvSecretResolver("TENANT_SECRET_")("tenant-a") == "abc"
        assert EnvSecretResolver("TENANT_SECRET_")("tenant-b") is None


class TestRateLimiter:
    def test_allows_does_not_consume(self, clock):
        limiter = SlidingWindowRateLimiter(1, 10, clock=clock)
        assert limiter.allows("t")
        assert limiter.allows("t")
        limiter.record("t")
        assert not limiter.allows("t")

    def test_keys_independent(self, clock):
        limiter = SlidingWindowRateLimiter(1, 10, clock=clock)
        limiter.record("a")
        assert limiter.allows("b")
        assert limiter.remaining("a") == 0
        assert limiter.remaining("b") == 1

    def test_window_slides(self, clock):
        limiter = SlidingWindowRateLimiter(2, 10, clock=clock)
        limiter.record("t")
        clock.advance(5)
        limiter.record("t")
        clock.advance(5)
        assert limiter.remaining("t") == 1

    def test_reset(self, clock):
        limiter = SlidingWindowRateLimiter(1, 10, clock=clock)
        limiter.record("t")
        limiter.reset("t")
        assert limiter.allows("t")
