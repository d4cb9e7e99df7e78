"""Language-model backend contract used by the specialist agent loop."""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from agent_orchestrator.errors import OrchestratorError


class LLMError(OrchestratorError):
    """The model backend failed or returned something unusable."""


@dataclass
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is None when the model produced arguments that are not
    valid JSON; the loop treats that as a schema failure.
    """
    id: str
    name: str
    arguments: Optional[dict[str, Any]]


@dataclass
class LLMResponse:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class LLMClient(Protocol):
    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        ...
