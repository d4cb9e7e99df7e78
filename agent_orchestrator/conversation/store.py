"""
Conversation records and idempotency bookkeeping.

Messages are only ever appended, each with the next sequence number.
Idempotency keys are remembered for the replay window together with the
reply they produced, so a retried delivery gets the original reply back
and appends nothing.
"""

import logging
import time
from typing import Callable, Optional

from agent_orchestrator.config import SecurityConfig, settings
from agent_orchestrator.schemas.conversation import Conversation, Message, PendingAction, Role
from agent_orchestrator.schemas.events import InboundEvent
from agent_orchestrator.schemas.reply import OutboundReply

logger = logging.getLogger(__name__)


class InMemoryConversationStore:
    """Process-local conversation store. Callers serialize access per conversation."""

    def __init__(
        self,
        config: Optional[SecurityConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._window = (config or settings.security).replay_window_sec
        self._clock = clock
        self._conversations: dict[str, Conversation] = {}
        self._replies: dict[str, dict[str, tuple[float, OutboundReply]]] = {}

    def get(self, key: str) -> Optional[Conversation]:
        return self._conversations.get(key)

    def get_or_create(self, event: InboundEvent) -> Conversation:
        key = event.conversation_key
        conversation = self._conversations.get(key)
        if conversation is None or conversation.archived:
            conversation = Conversation(
                key=key,
                tenant_id=event.tenant_id,
                contact_id=event.contact_id,
                channel=event.channel,
            )
            self._conversations[key] = conversation
            logger.debug("Conversation opened: %s", key)
        return conversation

    def append(
        self,
        conversation: Conversation,
        role: Role,
        content: str,
        idempotency_key: Optional[str] = None,
    ) -> Message:
        message = Message(
            role=role,
            content=content,
            channel=conversation.channel,
            sequence=conversation.last_sequence + 1,
            idempotency_key=idempotency_key,
        )
        conversation.messages.append(message)
        return message

    def set_pending(self, conversation: Conversation, pending: Optional[PendingAction]) -> None:
        conversation.pending_action = pending

    def archive(self, key: str) -> None:
        conversation = self._conversations.get(key)
        if conversation is not None:
            conversation.archived = True

    # ------------------------------------------------------------------ #
    # Idempotency
    # ------------------------------------------------------------------ #

    def _prune(self, key: str) -> dict[str, tuple[float, OutboundReply]]:
        seen = self._replies.setdefault(key, {})
        cutoff = self._clock() - self._window
        for idem in [k for k, (at, _) in seen.items() if at < cutoff]:
            del seen[idem]
        return seen

    def find_reply(self, conversation_key: str, idempotency_key: str) -> Optional[OutboundReply]:
        """The reply already produced for this delivery, if still inside the replay window."""
        entry = self._prune(conversation_key).get(idempotency_key)
        return entry[1] if entry else None

    def remember_reply(self, conversation_key: str, idempotency_key: str, reply: OutboundReply) -> None:
        self._prune(conversation_key)[idempotency_key] = (self._clock(), reply)
