"""Conversation records: ordered messages for one tenant+contact+channel."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from agent_orchestrator.schemas.events import Channel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    AGENT = "agent"
    TOOL = "tool"


class Message(BaseModel):
    """A single message in a conversation.

    ``sequence`` is assigned by the conversation store and is strictly
    increasing within one conversation.
    """

    role: Role
    content: str
    channel: Channel
    sequence: int = Field(ge=1)
    timestamp: datetime = Field(default_factory=_utcnow)
    idempotency_key: Optional[str] = None


class PendingAction(BaseModel):
    """A side-effecting tool call waiting for the user's explicit confirmation."""

    tool_name: str
    arguments: dict[str, Any]
    agent_type: str
    prompt: str
    created_at: datetime = Field(default_factory=_utcnow)


class Conversation(BaseModel):
    """Ordered message log for one tenant, contact and channel."""

    key: str
    tenant_id: str
    contact_id: str
    channel: Channel
    messages: list[Message] = Field(default_factory=list)
    pending_action: Optional[PendingAction] = None
    archived: bool = False

    @property
    def last_sequence(self) -> int:
        return self.messages[-1].sequence if self.messages else 0

    def recent(self, window: int) -> list[Message]:
        """Return the last ``window`` user/agent messages, oldest first."""
        dialogue = [m for m in self.messages if m.role in (Role.USER, Role.AGENT)]
        if window <= 0:
            return []
        return dialogue[-window:]
