"""
Tool executor: run one validated tool call under its own timeout.

Whatever the handler does, the caller receives a ``ToolResult``; handler
exceptions, backend errors and timeouts all become failed results so the
agent loop can treat them as observations.
"""

import asyncio
import logging
import time
from typing import Any, Optional

from pydantic import BaseModel

from agent_orchestrator.config import AgentLoopConfig, settings
from agent_orchestrator.errors import ToolValidationError
from agent_orchestrator.tools.backends import BackendError
from agent_orchestrator.tools.models import ToolContext, ToolDefinition, ToolResult
from agent_orchestrator.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Invokes registered tools with per-tool timeouts."""

    def __init__(self, registry: ToolRegistry, config: Optional[AgentLoopConfig] = None) -> None:
        self._registry = registry
        self._config = config or settings.agent_loop

    async def execute(self, tool: ToolDefinition, params: BaseModel, context: ToolContext) -> ToolResult:
        timeout = tool.timeout_sec or self._config.default_tool_timeout_sec
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(tool.handler(params, context), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %.1fs", tool.name, timeout)
            return ToolResult.fail("timeout", f"{tool.name} did not respond in time.")
        except BackendError as exc:
            logger.warning("Tool %s backend error: %s", tool.name, exc)
            return ToolResult.fail("backend_error", str(exc))
        except ToolValidationError as exc:
            return ToolResult.fail("invalid_parameters", str(exc))
        except Exception:
            logger.exception("Tool %s raised unexpectedly", tool.name)
            return ToolResult.fail("tool_error", f"{tool.name} failed unexpectedly.")

        logger.info(
            "Tool %s finished in %.0fms (success=%s)",
            tool.name, (time.monotonic() - started) * 1000, result.success,
        )
        return result

    async def execute_by_name(self, name: str, arguments: Any, context: ToolContext) -> ToolResult:
        """Validate and execute in one step; validation problems become a failed result."""
        try:
            tool = self._registry.get(name)
            params = tool.validate(arguments)
        except KeyError:
            return ToolResult.fail("unknown_tool", f"There is no tool named '{name}'.")
        except ToolValidationError as exc:
            return ToolResult.fail("invalid_parameters", str(exc))
        return await self.execute(tool, params, context)
