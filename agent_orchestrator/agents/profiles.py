"""
Specialist agent profiles and the (vertical, intent) -> agent table.

A profile names the tools its agent may be offered. ``action_tools`` are
the ones that carry out the request the agent exists for; if none of
them is permitted for a tenant, the router falls back to the general
agent instead of offering an agent that cannot act.
"""

from dataclasses import dataclass
from enum import Enum

from agent_orchestrator.agents.supervisor import Intent
from agent_orchestrator.schemas.tenant import Vertical


class AgentType(str, Enum):
    BOOKING = "booking"
    ORDERING = "ordering"
    INFO = "info"
    INSURANCE = "insurance"
    ESCALATION = "escalation"
    GENERAL = "general"


SUPPORT_TOOLS = ("get_business_hours", "get_business_info", "search_knowledge_base", "transfer_to_human")


@dataclass(frozen=True)
class AgentProfile:
    agent_type: AgentType
    action_tools: tuple[str, ...] = ()
    support_tools: tuple[str, ...] = SUPPORT_TOOLS

    @property
    def candidate_tools(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(self.action_tools + self.support_tools))


GENERAL_PROFILE = AgentProfile(AgentType.GENERAL)
ESCALATION_PROFILE = AgentProfile(AgentType.ESCALATION, support_tools=("transfer_to_human",))

PROFILES: dict[Vertical, dict[AgentType, AgentProfile]] = {
    Vertical.RESTAURANT: {
        AgentType.BOOKING: AgentProfile(
            AgentType.BOOKING,
            action_tools=("check_reservation_availability", "create_reservation", "cancel_reservation"),
        ),
        AgentType.ORDERING: AgentProfile(
            AgentType.ORDERING, action_tools=("get_menu", "create_order"),
        ),
        AgentType.INFO: AgentProfile(
            AgentType.INFO, support_tools=SUPPORT_TOOLS + ("get_menu",),
        ),
        AgentType.ESCALATION: ESCALATION_PROFILE,
        AgentType.GENERAL: GENERAL_PROFILE,
    },
    Vertical.DENTAL: {
        AgentType.BOOKING: AgentProfile(
            AgentType.BOOKING,
            action_tools=("check_appointment_availability", "create_appointment", "cancel_appointment"),
            support_tools=SUPPORT_TOOLS + ("get_services",),
        ),
        AgentType.INSURANCE: AgentProfile(
            AgentType.INSURANCE, action_tools=("get_insurance_info",),
        ),
        AgentType.INFO: AgentProfile(
            AgentType.INFO, support_tools=SUPPORT_TOOLS + ("get_services",),
        ),
        AgentType.ESCALATION: ESCALATION_PROFILE,
        AgentType.GENERAL: GENERAL_PROFILE,
    },
    Vertical.GENERAL: {
        AgentType.INFO: AgentProfile(AgentType.INFO),
        AgentType.ESCALATION: ESCALATION_PROFILE,
        AgentType.GENERAL: GENERAL_PROFILE,
    },
}

# Intents missing from a vertical's table go to its INFO agent.
INTENT_ROUTES: dict[Vertical, dict[Intent, AgentType]] = {
    Vertical.RESTAURANT: {
        Intent.URGENT: AgentType.ESCALATION,
        Intent.HUMAN_REQUEST: AgentType.ESCALATION,
        Intent.BOOKING: AgentType.BOOKING,
        Intent.CANCEL: AgentType.BOOKING,
        Intent.ORDER: AgentType.ORDERING,
        Intent.GENERAL: AgentType.GENERAL,
    },
    Vertical.DENTAL: {
        Intent.URGENT: AgentType.ESCALATION,
        Intent.HUMAN_REQUEST: AgentType.ESCALATION,
        Intent.BOOKING: AgentType.BOOKING,
        Intent.CANCEL: AgentType.BOOKING,
        Intent.INSURANCE: AgentType.INSURANCE,
        Intent.GENERAL: AgentType.GENERAL,
    },
    Vertical.GENERAL: {
        Intent.URGENT: AgentType.ESCALATION,
        Intent.HUMAN_REQUEST: AgentType.ESCALATION,
        Intent.GENERAL: AgentType.GENERAL,
    },
}


def agent_for(vertical: Vertical, intent: Intent) -> AgentType:
    return INTENT_ROUTES[vertical].get(intent, AgentType.INFO)


def profile_for(vertical: Vertical, agent_type: AgentType) -> AgentProfile:
    """Profile for an agent in a vertical; agents a vertical lacks map to GENERAL."""
    return PROFILES[vertical].get(agent_type, GENERAL_PROFILE)
