"""
Vertical/capability router.

Pure function of (vertical, intent, enabled capabilities): picks the
specialist agent and the exact tool subset it may be offered. A tool is
allowed iff every capability it requires is enabled. When the chosen
agent would have none of its action tools, the general agent is chosen
instead and the missing capabilities are reported so the reply can say
what is unavailable rather than pretend.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from agent_orchestrator.agents.profiles import AgentType, agent_for, profile_for
from agent_orchestrator.agents.supervisor import Intent
from agent_orchestrator.schemas.tenant import Vertical
from agent_orchestrator.tools.capabilities import Capability, resolve_capabilities
from agent_orchestrator.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteDecision:
    vertical: Vertical
    intent: Optional[Intent]
    agent_type: AgentType
    allowed_tools: tuple[str, ...]
    enabled_capabilities: tuple[str, ...]
    unavailable_capabilities: tuple[str, ...] = ()
    requested_agent: Optional[AgentType] = None

    @property
    def fell_back(self) -> bool:
        return self.requested_agent is not None and self.requested_agent != self.agent_type


class Router:
    """Stateless agent and tool selection."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    def route(
        self,
        vertical: Vertical,
        intent: Intent,
        capabilities: Iterable[str],
    ) -> RouteDecision:
        return self._decide(vertical, intent, agent_for(vertical, intent), capabilities)

    def route_for_agent(
        self,
        vertical: Vertical,
        agent_type: AgentType,
        capabilities: Iterable[str],
    ) -> RouteDecision:
        """Route straight to a known agent, e.g. to resume a pending confirmation."""
        return self._decide(vertical, None, agent_type, capabilities)

    def _decide(
        self,
        vertical: Vertical,
        intent: Optional[Intent],
        requested: AgentType,
        capabilities: Iterable[str],
    ) -> RouteDecision:
        enabled: frozenset[Capability] = resolve_capabilities(capabilities)
        enabled_names = tuple(sorted(c.value for c in enabled))
        profile = profile_for(vertical, requested)

        if profile.action_tools and not self._registry.permitted(profile.action_tools, enabled):
            missing = self._registry.missing_capabilities(profile.action_tools, enabled)
            general = profile_for(vertical, AgentType.GENERAL)
            logger.info(
                "No usable tools for %s agent (missing %s); routing to general",
                requested.value, ", ".join(missing),
            )
            return RouteDecision(
                vertical=vertical,
                intent=intent,
                agent_type=AgentType.GENERAL,
                allowed_tools=self._registry.permitted(general.candidate_tools, enabled),
                enabled_capabilities=enabled_names,
                unavailable_capabilities=missing,
                requested_agent=requested,
            )

        return RouteDecision(
            vertical=vertical,
            intent=intent,
            agent_type=profile.agent_type,
            allowed_tools=self._registry.permitted(profile.candidate_tools, enabled),
            enabled_capabilities=enabled_names,
            requested_agent=requested,
        )
