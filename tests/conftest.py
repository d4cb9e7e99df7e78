"""Shared test fixtures, fakes and helpers."""

import inspect
import json
import uuid
from typing import Any, Callable, Optional, Union

import pytest

from agent_orchestrator.conversation.guardrails import GuardrailPipeline
from agent_orchestrator.conversation.state_machine import TurnStateMachine
from agent_orchestrator.llm.base import LLMResponse, ToolCall
from agent_orchestrator.schemas.events import (
    SIGNATURE_HEADER,
    SOURCE_ID_HEADER,
    TIMESTAMP_HEADER,
    Channel,
    InboundEvent,
    RawEvent,
)
from agent_orchestrator.schemas.tenant import Personality, TenantConfig, Vertical
from agent_orchestrator.security.gate import sign_payload
from agent_orchestrator.tools.backends import InMemoryDomainBackend
from agent_orchestrator.tools.registry import ToolRegistry

RESTAURANT_CAPABILITIES = [
    "business_hours", "business_info", "human_transfer", "faq",
    "reservations", "menu_info", "orders",
]

DENTAL_CAPABILITIES = [
    "business_hours", "business_info", "human_transfer", "faq",
    "appointments", "services_info", "insurance_info", "appointment_management",
]

TEST_SECRET = "s3cr3t-for-tests"


# ---------------------------------------------------------------------- #
# Fakes
# ---------------------------------------------------------------------- #

Step = Union[LLMResponse, Exception, Callable[..., Any]]


class ScriptedLLM:
    """Language model that replays a fixed script of responses.

    Each step is an ``LLMResponse``, an exception to raise, or a callable
    (sync or async) receiving the messages. Every call is recorded.
    """

    def __init__(self, steps: Optional[list[Step]] = None) -> None:
        self.steps = list(steps or [])
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, tools=None) -> LLMResponse:
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if not self.steps:
            raise AssertionError("ScriptedLLM ran out of steps")
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            result = step(messages)
            if inspect.isawaitable(result):
                result = await result
            return result
        return step

    def tool_names_offered(self, call_index: int = 0) -> list[str]:
        tools = self.calls[call_index]["tools"] or []
        return sorted(t["function"]["name"] for t in tools)


def answer(text: str) -> LLMResponse:
    return LLMResponse(content=text)


def tool_call(name: str, arguments: Optional[dict] = None, call_id: Optional[str] = None) -> LLMResponse:
    return LLMResponse(tool_calls=[ToolCall(id=call_id or f"call_{name}", name=name, arguments=arguments)])


class FakeEmbedder:
    """Deterministic embedder: known texts map to fixed vectors."""

    def __init__(self, vectors: Optional[dict[str, list[float]]] = None, default: Optional[list[float]] = None) -> None:
        self.vectors = vectors or {}
        self.default = default or [0.0, 0.0, 1.0]
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return list(self.vectors.get(text, self.default))


class FakeClock:
    """Manually advanced clock usable wherever a ``clock`` callable is accepted."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------- #
# Factories
# ---------------------------------------------------------------------- #

def make_tenant(**overrides: Any) -> TenantConfig:
    """Restaurant tenant with every restaurant capability enabled."""
    data: dict[str, Any] = {
        "tenant_id": "tenant-a",
        "business_name": "La Terraza",
        "vertical": Vertical.RESTAURANT,
        "capabilities": list(RESTAURANT_CAPABILITIES),
        "personality": Personality(assistant_name="Sofia"),
        "business_hours": {"monday": "12:00-22:00", "saturday": "12:00-23:00"},
        "address": "Av. Reforma 120",
        "phone": "+52 55 1234 5678",
    }
    data.update(overrides)
    return TenantConfig(**data)


def make_dental_tenant(**overrides: Any) -> TenantConfig:
    data: dict[str, Any] = {
        "tenant_id": "tenant-d",
        "business_name": "Bright Smile Dental",
        "vertical": Vertical.DENTAL,
        "capabilities": list(DENTAL_CAPABILITIES),
        "business_hours": {"monday": "09:00-17:00"},
    }
    data.update(overrides)
    return make_tenant(**data)


def make_event(
    content: str = "hello",
    tenant_id: str = "tenant-a",
    contact_id: str = "contact-1",
    channel: Channel = Channel.CHAT,
    idempotency_key: Optional[str] = None,
) -> InboundEvent:
    return InboundEvent(
        channel=channel,
        tenant_id=tenant_id,
        contact_id=contact_id,
        content=content,
        idempotency_key=idempotency_key or f"idem-{uuid.uuid4().hex[:12]}",
    )


def make_body(**overrides: Any) -> bytes:
    data: dict[str, Any] = {
        "channel": "chat",
        "tenant_id": "tenant-a",
        "contact_id": "contact-1",
        "content": "What time do you open?",
        "idempotency_key": "evt-001",
    }
    data.update(overrides)
    return json.dumps(data).encode("utf-8")


def make_raw_event(
    body: Optional[bytes] = None,
    timestamp: Optional[str] = None,
    secret: str = TEST_SECRET,
    remote_addr: str = "10.0.0.5",
    headers: Optional[dict[str, str]] = None,
    now: float = 1_700_000_000.0,
) -> RawEvent:
    """A correctly signed raw event; override pieces to break it."""
    body = body if body is not None else make_body()
    timestamp = timestamp if timestamp is not None else str(int(now))
    signed = {
        SIGNATURE_HEADER: sign_payload(secret, timestamp, body),
        TIMESTAMP_HEADER: timestamp,
        SOURCE_ID_HEADER: "webhook-relay",
    }
    if headers is not None:
        signed.update(headers)
        signed = {k: v for k, v in signed.items() if v is not None}
    return RawEvent(headers=signed, body=body, remote_addr=remote_addr)


# ---------------------------------------------------------------------- #
# Fixtures
# ---------------------------------------------------------------------- #

@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def backend():
    return InMemoryDomainBackend()


@pytest.fixture
def state_machine():
    return TurnStateMachine()


@pytest.fixture
def guardrail_pipeline():
    return GuardrailPipeline()


@pytest.fixture
def clock():
    return FakeClock()
