from agent_orchestrator.agents.loop import SpecialistAgentLoop, TurnInput, TurnResult
from agent_orchestrator.agents.profiles import AgentType, agent_for, profile_for
from agent_orchestrator.agents.router import RouteDecision, Router
from agent_orchestrator.agents.supervisor import Intent, IntentSupervisor, classify_intent

__all__ = [
    "SpecialistAgentLoop", "TurnInput", "TurnResult",
    "AgentType", "agent_for", "profile_for",
    "RouteDecision", "Router",
    "Intent", "IntentSupervisor", "classify_intent",
]
