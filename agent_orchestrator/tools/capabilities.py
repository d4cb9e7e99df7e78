"""
Closed capability registry.

Capabilities are permission tags a tenant enables through its service
configuration. The table below maps each capability to the tools that
implement it and is the only place capabilities are defined; nothing
creates one at runtime.
"""

import logging
from enum import Enum
from typing import Iterable

from agent_orchestrator.errors import BootError

logger = logging.getLogger(__name__)

REGISTRY_VERSION = 1


class Capability(str, Enum):
    BUSINESS_HOURS = "business_hours"
    BUSINESS_INFO = "business_info"
    HUMAN_TRANSFER = "human_transfer"
    FAQ = "faq"
    RESERVATIONS = "reservations"
    MENU_INFO = "menu_info"
    ORDERS = "orders"
    APPOINTMENTS = "appointments"
    SERVICES_INFO = "services_info"
    INSURANCE_INFO = "insurance_info"
    APPOINTMENT_MANAGEMENT = "appointment_management"
    EMERGENCIES = "emergencies"


CAPABILITY_TOOLS: dict[Capability, tuple[str, ...]] = {
    Capability.BUSINESS_HOURS: ("get_business_hours",),
    Capability.BUSINESS_INFO: ("get_business_info",),
    Capability.HUMAN_TRANSFER: ("transfer_to_human",),
    Capability.FAQ: ("search_knowledge_base",),
    Capability.RESERVATIONS: (
        "check_reservation_availability",
        "create_reservation",
        "cancel_reservation",
    ),
    Capability.MENU_INFO: ("get_menu",),
    Capability.ORDERS: ("create_order",),
    Capability.APPOINTMENTS: ("check_appointment_availability", "create_appointment"),
    Capability.SERVICES_INFO: ("get_services",),
    Capability.INSURANCE_INFO: ("get_insurance_info",),
    Capability.APPOINTMENT_MANAGEMENT: ("cancel_appointment",),
    # Served by routing (urgent intents go straight to a human), not by a tool.
    Capability.EMERGENCIES: (),
}

CAPABILITY_LABELS: dict[Capability, dict[str, str]] = {
    Capability.BUSINESS_HOURS: {"en": "business hours", "es": "horarios de atención"},
    Capability.BUSINESS_INFO: {"en": "business information", "es": "información del negocio"},
    Capability.HUMAN_TRANSFER: {"en": "transfers to our team", "es": "transferencia con nuestro equipo"},
    Capability.FAQ: {"en": "answers to frequent questions", "es": "respuestas a preguntas frecuentes"},
    Capability.RESERVATIONS: {"en": "table reservations", "es": "reservaciones de mesa"},
    Capability.MENU_INFO: {"en": "menu details", "es": "información del menú"},
    Capability.ORDERS: {"en": "placing orders", "es": "pedidos"},
    Capability.APPOINTMENTS: {"en": "appointment booking", "es": "agendar citas"},
    Capability.SERVICES_INFO: {"en": "service and pricing details", "es": "información de servicios y precios"},
    Capability.INSURANCE_INFO: {"en": "insurance coverage details", "es": "información de cobertura de seguros"},
    Capability.APPOINTMENT_MANAGEMENT: {"en": "changing or cancelling appointments", "es": "cambiar o cancelar citas"},
    Capability.EMERGENCIES: {"en": "emergency attention", "es": "atención de urgencias"},
}


def capability_label(capability: Capability, locale: str = "en") -> str:
    """Human-readable name of a capability in the given language."""
    labels = CAPABILITY_LABELS[capability]
    return labels.get(locale, labels["en"])


def resolve_capabilities(names: Iterable[str]) -> frozenset[Capability]:
    """Map configured capability names onto the closed registry.

    Names outside the registry are dropped with a warning; they never
    grant access to anything.
    """
    resolved = set()
    for name in names:
        try:
            resolved.add(Capability(name.strip().lower()))
        except ValueError:
            logger.warning("Ignoring unknown capability '%s'", name)
    return frozenset(resolved)


def validate_tool_table(tool_capabilities: dict[str, Iterable[str]]) -> None:
    """Check tool definitions against the registry; fatal at startup.

    Args:
        tool_capabilities: tool name -> names of its required capabilities.

    Raises:
        BootError: If a tool requires an unregistered capability, is not
            listed under each capability it requires, requires nothing,
            or the registry lists a tool that is undefined or does not
            require the capability it is listed under.
    """
    problems: list[str] = []
    known = {c.value for c in Capability}
    table = {name: set(required) for name, required in tool_capabilities.items()}

    for tool_name, required in sorted(table.items()):
        if not required:
            problems.append(f"tool '{tool_name}' declares no required capability")
        for cap_name in sorted(required):
            if cap_name not in known:
                problems.append(f"tool '{tool_name}' requires unknown capability '{cap_name}'")
            elif tool_name not in CAPABILITY_TOOLS[Capability(cap_name)]:
                problems.append(
                    f"tool '{tool_name}' is not listed under capability '{cap_name}'"
                )

    for capability, tool_names in CAPABILITY_TOOLS.items():
        for tool_name in tool_names:
            if tool_name not in table:
                problems.append(
                    f"capability '{capability.value}' lists undefined tool '{tool_name}'"
                )
            elif capability.value not in table[tool_name]:
                problems.append(
                    f"capability '{capability.value}' lists tool '{tool_name}' "
                    "which does not require it"
                )

    if problems:
        raise BootError(
            f"Capability registry v{REGISTRY_VERSION} is inconsistent: " + "; ".join(problems)
        )
    logger.debug("Capability registry v%d validated for %d tools", REGISTRY_VERSION, len(table))
