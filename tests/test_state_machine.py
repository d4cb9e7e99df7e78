"""Tests for the agent-loop turn state machine."""

import pytest

from agent_orchestrator.conversation.state_machine import (
    TERMINAL_STATES,
    TurnEvent,
    TurnState,
    TurnStateMachine,
)
from agent_orchestrator.errors import InvalidTransitionError


class TestInitialState:
    def test_starts_awaiting_reasoning(self, state_machine):
        assert state_machine.current_state == TurnState.AWAITING_REASONING

    def test_not_terminal(self, state_machine):
        assert state_machine.is_terminal() is False

    def test_history_has_initial_entry(self, state_machine):
        history = state_machine.get_history()
        assert len(history) == 1
        assert history[0].event is None


class TestValidTransitions:
    def test_direct_answer(self, state_machine):
        state_machine.transition(TurnEvent.MODEL_ANSWERED)
        assert state_machine.current_state == TurnState.FINAL_ANSWER
        assert state_machine.is_terminal()

    def test_tool_round_trip(self, state_machine):
        state_machine.transition(TurnEvent.TOOL_REQUESTED)
        state_machine.transition(TurnEvent.TOOL_SUCCEEDED)
        state_machine.transition(TurnEvent.CONTINUE)
        state_machine.transition(TurnEvent.MODEL_ANSWERED)
        assert state_machine.get_state_trace() == [
            "awaiting_reasoning",
            "tool_call_requested",
            "tool_executed",
            "awaiting_reasoning",
            "final_answer",
        ]

    def test_several_calls_in_one_step(self, state_machine):
        state_machine.transition(TurnEvent.TOOL_REQUESTED)
        state_machine.transition(TurnEvent.TOOL_FAILED)
        state_machine.transition(TurnEvent.TOOL_REQUESTED)
        assert state_machine.current_state == TurnState.TOOL_CALL_REQUESTED

    def test_confirmation_is_terminal(self, state_machine):
        state_machine.transition(TurnEvent.TOOL_REQUESTED)
        state_machine.transition(TurnEvent.CONFIRMATION_REQUIRED)
        assert state_machine.current_state == TurnState.AWAITING_CONFIRMATION
        assert state_machine.is_terminal()

    def test_failure_limit_escalates(self, state_machine):
        state_machine.transition(TurnEvent.TOOL_REQUESTED)
        state_machine.transition(TurnEvent.TOOL_FAILED)
        state_machine.transition(TurnEvent.FAILURE_LIMIT)
        assert state_machine.current_state == TurnState.ESCALATED

    def test_iteration_cap_from_reasoning(self, state_machine):
        state_machine.transition(TurnEvent.ITERATION_CAP)
        assert state_machine.current_state == TurnState.FINAL_ANSWER

    def test_rejected_tool_ends_turn(self, state_machine):
        state_machine.transition(TurnEvent.TOOL_REQUESTED)
        state_machine.transition(TurnEvent.TOOL_REJECTED)
        assert state_machine.current_state == TurnState.FINAL_ANSWER


class TestInvalidTransitions:
    def test_tool_success_without_request(self, state_machine):
        with pytest.raises(InvalidTransitionError, match="awaiting_reasoning"):
            state_machine.transition(TurnEvent.TOOL_SUCCEEDED)

    def test_no_transition_out_of_terminal_states(self):
        for state in TERMINAL_STATES:
            assert not any(t.from_state == state for t in TurnStateMachine.TRANSITIONS)

    def test_answer_after_final(self, state_machine):
        state_machine.transition(TurnEvent.MODEL_ANSWERED)
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(TurnEvent.MODEL_ANSWERED)

    def test_confirmation_only_from_tool_request(self, state_machine):
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(TurnEvent.CONFIRMATION_REQUIRED)

    def test_failed_transition_leaves_state(self, state_machine):
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(TurnEvent.CONTINUE)
        assert state_machine.current_state == TurnState.AWAITING_REASONING
        assert len(state_machine.get_history()) == 1


class TestValidEvents:
    def test_from_tool_executed(self, state_machine):
        state_machine.transition(TurnEvent.TOOL_REQUESTED)
        state_machine.transition(TurnEvent.TOOL_SUCCEEDED)
        events = state_machine.get_valid_events()
        assert TurnEvent.CONTINUE in events
        assert TurnEvent.FAILURE_LIMIT in events
        assert TurnEvent.MODEL_ANSWERED not in events
