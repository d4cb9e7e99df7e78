"""Outbound reply contract handed to the delivery collaborator."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from agent_orchestrator.errors import OutcomeCategory, TerminalSignal
from agent_orchestrator.schemas.events import Channel


class ReplyAction(BaseModel):
    """Structured action accompanying a reply.

    ``kind`` is one of ``confirm`` (a confirmation is awaited),
    ``escalate`` (handed to a human) or ``offer_escalation``.
    """

    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)


class OutboundReply(BaseModel):
    """Normalized reply for one admitted inbound event."""

    conversation_key: str
    channel: Channel
    text: str
    signal: TerminalSignal
    outcome: Optional[OutcomeCategory] = None
    action: Optional[ReplyAction] = None
    hints: dict[str, Any] = Field(default_factory=dict)
    agent: Optional[str] = None
    intent: Optional[str] = None
    idempotency_key: Optional[str] = None
