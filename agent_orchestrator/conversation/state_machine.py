"""
Finite state machine for one turn of the specialist agent loop.

Every step the loop takes is a transition in the table below; anything
not listed is rejected. The terminal states are the only ways a turn can
end, which keeps the iteration bound and the escalation paths auditable.

Usage:
    sm = TurnStateMachine()
    sm.transition(TurnEvent.TOOL_REQUESTED)
    assert sm.current_state == TurnState.TOOL_CALL_REQUESTED
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from agent_orchestrator.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    """All states a turn can be in."""
    AWAITING_REASONING = "awaiting_reasoning"
    TOOL_CALL_REQUESTED = "tool_call_requested"
    TOOL_EXECUTED = "tool_executed"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    FINAL_ANSWER = "final_answer"
    ESCALATED = "escalated"


class TurnEvent(str, Enum):
    """Events that move a turn between states."""
    MODEL_ANSWERED = "model_answered"
    TOOL_REQUESTED = "tool_requested"
    TOOL_SUCCEEDED = "tool_succeeded"
    TOOL_FAILED = "tool_failed"
    TOOL_REJECTED = "tool_rejected"
    CONFIRMATION_REQUIRED = "confirmation_required"
    CONTINUE = "continue"
    ANSWER_READY = "answer_ready"
    CAPABILITY_UNAVAILABLE = "capability_unavailable"
    ITERATION_CAP = "iteration_cap"
    FAILURE_LIMIT = "failure_limit"
    HANDOFF = "handoff"


TERMINAL_STATES = frozenset({TurnState.FINAL_ANSWER, TurnState.AWAITING_CONFIRMATION, TurnState.ESCALATED})


@dataclass(frozen=True)
class Transition:
    """A single valid state transition."""
    from_state: TurnState
    event: TurnEvent
    to_state: TurnState


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: TurnState
    entered_at: datetime
    event: Optional[TurnEvent] = None


class TurnStateMachine:
    """Deterministic per-turn state machine for the agent loop."""

    TRANSITIONS: tuple[Transition, ...] = (
        # --- Reasoning ---
        Transition(TurnState.AWAITING_REASONING, TurnEvent.MODEL_ANSWERED, TurnState.FINAL_ANSWER),
        Transition(TurnState.AWAITING_REASONING, TurnEvent.TOOL_REQUESTED, TurnState.TOOL_CALL_REQUESTED),
        Transition(TurnState.AWAITING_REASONING, TurnEvent.ANSWER_READY, TurnState.FINAL_ANSWER),
        Transition(TurnState.AWAITING_REASONING, TurnEvent.CAPABILITY_UNAVAILABLE, TurnState.FINAL_ANSWER),
        Transition(TurnState.AWAITING_REASONING, TurnEvent.ITERATION_CAP, TurnState.FINAL_ANSWER),
        Transition(TurnState.AWAITING_REASONING, TurnEvent.HANDOFF, TurnState.ESCALATED),

        # --- Tool call gate ---
        Transition(TurnState.TOOL_CALL_REQUESTED, TurnEvent.TOOL_SUCCEEDED, TurnState.TOOL_EXECUTED),
        Transition(TurnState.TOOL_CALL_REQUESTED, TurnEvent.TOOL_FAILED, TurnState.TOOL_EXECUTED),
        Transition(TurnState.TOOL_CALL_REQUESTED, TurnEvent.TOOL_REJECTED, TurnState.FINAL_ANSWER),
        Transition(TurnState.TOOL_CALL_REQUESTED, TurnEvent.CONFIRMATION_REQUIRED, TurnState.AWAITING_CONFIRMATION),
        Transition(TurnState.TOOL_CALL_REQUESTED, TurnEvent.HANDOFF, TurnState.ESCALATED),

        # --- After a tool ---
        Transition(TurnState.TOOL_EXECUTED, TurnEvent.TOOL_REQUESTED, TurnState.TOOL_CALL_REQUESTED),
        Transition(TurnState.TOOL_EXECUTED, TurnEvent.CONTINUE, TurnState.AWAITING_REASONING),
        Transition(TurnState.TOOL_EXECUTED, TurnEvent.ANSWER_READY, TurnState.FINAL_ANSWER),
        Transition(TurnState.TOOL_EXECUTED, TurnEvent.FAILURE_LIMIT, TurnState.ESCALATED),
        Transition(TurnState.TOOL_EXECUTED, TurnEvent.ITERATION_CAP, TurnState.FINAL_ANSWER),
        Transition(TurnState.TOOL_EXECUTED, TurnEvent.HANDOFF, TurnState.ESCALATED),
    )

    def __init__(self) -> None:
        self._current_state = TurnState.AWAITING_REASONING
        self._history: list[StateEntry] = [
            StateEntry(state=TurnState.AWAITING_REASONING, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> TurnState:
        return self._current_state

    def transition(self, event: TurnEvent) -> TurnState:
        """
        Execute a state transition.

        Args:
            event: The event triggering the transition.

        Returns:
            The new turn state.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.event == event:
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    event=event,
                ))
                logger.debug(
                    "Turn transition: %s -> %s (event: %s)",
                    old_state.value, self._current_state.value, event.value,
                )
                return self._current_state

        valid = [e.value for e in self.get_valid_events()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with event '{event.value}'. Valid events: {valid}"
        )

    def get_valid_events(self) -> list[TurnEvent]:
        """Return all events valid from the current state."""
        return [t.event for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATES
