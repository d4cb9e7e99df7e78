"""
Tool registry: tool name -> definition, resolved once at startup.

Construction validates every definition against the capability registry
and raises ``BootError`` on any inconsistency, so a process with an
unsound gating table never serves traffic.
"""

import logging
from typing import Iterable, Optional

from agent_orchestrator.errors import BootError
from agent_orchestrator.tools import common, dental, restaurant
from agent_orchestrator.tools.capabilities import Capability, validate_tool_table
from agent_orchestrator.tools.models import ToolDefinition

logger = logging.getLogger(__name__)


def builtin_tools() -> list[ToolDefinition]:
    return [*common.TOOLS, *restaurant.TOOLS, *dental.TOOLS]


class ToolRegistry:
    """Closed table of tool definitions shared read-only by router and executor."""

    def __init__(self, tools: Optional[Iterable[ToolDefinition]] = None) -> None:
        definitions = list(tools) if tools is not None else builtin_tools()
        table: dict[str, ToolDefinition] = {}
        for tool in definitions:
            if tool.name in table:
                raise BootError(f"Duplicate tool definition '{tool.name}'")
            table[tool.name] = tool

        validate_tool_table(
            {name: [c.value for c in tool.required_capabilities] for name, tool in table.items()}
        )
        self._tools = table
        logger.info("Tool registry ready with %d tools", len(table))

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> ToolDefinition:
        """Return a tool definition by name.

        Raises:
            KeyError: If the tool is not registered.
        """
        if name not in self._tools:
            raise KeyError(f"Tool '{name}' not registered. Available: {sorted(self._tools)}")
        return self._tools[name]

    def names(self) -> list[str]:
        return sorted(self._tools)

    def is_permitted(self, name: str, enabled: frozenset[Capability]) -> bool:
        """A tool is permitted iff every one of its required capabilities is enabled."""
        tool = self._tools.get(name)
        return tool is not None and tool.required_capabilities <= enabled

    def permitted(self, candidates: Iterable[str], enabled: frozenset[Capability]) -> tuple[str, ...]:
        """Filter ``candidates`` down to permitted tools, sorted by name."""
        return tuple(sorted({name for name in candidates if self.is_permitted(name, enabled)}))

    def missing_capabilities(self, names: Iterable[str], enabled: frozenset[Capability]) -> tuple[str, ...]:
        """Capabilities the given tools need that are not enabled, sorted."""
        missing: set[str] = set()
        for name in names:
            missing.update(c.value for c in self.get(name).required_capabilities - enabled)
        return tuple(sorted(missing))
