from agent_orchestrator.conversation.confirmation import ConfirmationReply, parse_confirmation
from agent_orchestrator.conversation.guardrails import GuardrailPipeline
from agent_orchestrator.conversation.ordering import KeyedLock
from agent_orchestrator.conversation.state_machine import (
    TurnEvent,
    TurnState,
    TurnStateMachine,
)
from agent_orchestrator.conversation.store import InMemoryConversationStore

__all__ = [
    "TurnStateMachine",
    "TurnState",
    "TurnEvent",
    "GuardrailPipeline",
    "ConfirmationReply",
    "parse_confirmation",
    "KeyedLock",
    "InMemoryConversationStore",
]
