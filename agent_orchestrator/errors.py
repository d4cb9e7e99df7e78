"""
Error taxonomy for the orchestration core.

Only boot-time invariant violations are allowed to escape as exceptions.
Everything raised inside a turn is converted at a component boundary into
one of the outcome categories below, so a tenant's channel never crashes.
"""

from enum import Enum


class OutcomeCategory(str, Enum):
    """How a turn ended, from the consumer's point of view."""

    REJECTED = "rejected"
    ISOLATED = "isolated"
    TOOL_FAILURE = "tool_failure"
    CAPABILITY_VIOLATION = "capability_violation"
    LOW_CONFIDENCE_RETRIEVAL = "low_confidence_retrieval"
    ESCALATION = "escalation"


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""


class BootError(OrchestratorError):
    """A static table (capabilities, tools, agent profiles) is inconsistent.

    Raised while building registries at startup; the process must not
    serve traffic with an unsound capability table.
    """


class ToolValidationError(OrchestratorError):
    """Tool parameters do not satisfy the tool's schema."""

    def __init__(self, tool_name: str, problems: list[str]) -> None:
        self.tool_name = tool_name
        self.problems = problems
        super().__init__(f"Invalid parameters for '{tool_name}': {'; '.join(problems)}")


class PromptStructureError(OrchestratorError):
    """Enrichment altered the section structure of a compiled prompt."""


class InvalidEventError(OrchestratorError):
    """An admitted event body does not match the inbound event contract."""


class TerminalSignal(str, Enum):
    """What a consumer of the orchestrator must branch on for one event.

    ``REJECTED`` is the only silent outcome: nothing is delivered.
    """

    REPLIED = "replied"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    FALLBACK = "fallback"
    ESCALATED = "escalated"


class InvalidTransitionError(OrchestratorError):
    """Raised when an agent-loop transition is not valid from the current state."""


class TurnTimeoutError(OrchestratorError):
    """The only tool attempted in a turn exceeded its timeout.

    Escalated to the turn level so the circuit breaker records a failure
    and serves its fallback.
    """

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' timed out and was the only tool attempted")
