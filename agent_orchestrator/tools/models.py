"""Tool definitions, invocation context and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from agent_orchestrator.errors import ToolValidationError
from agent_orchestrator.schemas.events import Channel
from agent_orchestrator.tools.capabilities import Capability

if TYPE_CHECKING:
    from agent_orchestrator.knowledge.retrieval import KnowledgeRetriever
    from agent_orchestrator.schemas.tenant import TenantConfig
    from agent_orchestrator.tools.backends import DomainBackend


@dataclass
class ToolResult:
    """Outcome of one tool invocation, consumed once by the agent loop."""

    success: bool
    message: str
    payload: dict[str, Any] = field(default_factory=dict)
    confirmation_text: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(
        cls,
        message: str,
        payload: Optional[dict[str, Any]] = None,
        confirmation_text: Optional[str] = None,
    ) -> "ToolResult":
        return cls(True, message, payload or {}, confirmation_text)

    @classmethod
    def fail(cls, error: str, message: str) -> "ToolResult":
        return cls(False, message, {}, None, error)

    @property
    def timed_out(self) -> bool:
        return self.error == "timeout"

    def as_observation(self) -> dict[str, Any]:
        """Compact form fed back to the model as the tool message."""
        observation: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.payload:
            observation["data"] = self.payload
        if self.error:
            observation["error"] = self.error
        return observation


@dataclass
class ToolContext:
    """Everything a handler may touch for one call. Tenant scope is fixed here."""

    tenant: "TenantConfig"
    conversation_key: str
    channel: Channel
    backend: "DomainBackend"
    retriever: Optional["KnowledgeRetriever"] = None

    @property
    def locale(self) -> str:
        return self.tenant.locale

    @property
    def is_voice(self) -> bool:
        return self.channel == Channel.VOICE


ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]
ConfirmationBuilder = Callable[[Any, ToolContext], str]


@dataclass(frozen=True)
class ToolDefinition:
    """Immutable description of one callable tool.

    ``params`` is a pydantic model: its JSON schema is what the language
    model sees and its validation is the schema check before execution.
    """

    name: str
    description: str
    params: type[BaseModel]
    required_capabilities: frozenset[Capability]
    handler: ToolHandler
    category: str = "general"
    requires_confirmation: bool = False
    confirmation_message: Optional[ConfirmationBuilder] = None
    timeout_sec: float = 10.0

    def openai_schema(self) -> dict[str, Any]:
        """Function-calling schema in the OpenAI ``tools`` format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.params.model_json_schema(),
            },
        }

    def validate(self, arguments: Any) -> BaseModel:
        """Validate raw model-supplied arguments.

        Raises:
            ToolValidationError: With one entry per failing field.
        """
        if not isinstance(arguments, dict):
            raise ToolValidationError(self.name, ["arguments must be a JSON object"])
        try:
            return self.params.model_validate(arguments)
        except ValidationError as exc:
            problems = [
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise ToolValidationError(self.name, problems) from None

    def confirmation_prompt(self, params: BaseModel, context: ToolContext) -> str:
        if self.confirmation_message is not None:
            return self.confirmation_message(params, context)
        if context.locale == "es":
            return "¿Confirmas que proceda?"
        return "Shall I go ahead?"
