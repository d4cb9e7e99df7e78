"""
Deterministic replies served when the reasoning path is unavailable.

This is the degraded mode: no model call, no tool call. Questions that
can be answered straight from tenant configuration (hours, address) still
get a useful answer; everything else gets a short apology with an offer
to retry or talk to a person.
"""

from typing import Optional

from agent_orchestrator.schemas.tenant import TenantConfig
from agent_orchestrator.tools.common import DAY_ORDER, DAY_NAMES_ES

APOLOGY = {
    "en": (
        "I'm sorry, I'm having trouble right now. Could you try again in a moment, "
        "or would you like me to connect you with someone from our team?"
    ),
    "es": (
        "Lo siento, estoy teniendo problemas en este momento. ¿Podrías intentarlo de nuevo "
        "en un momento, o prefieres que te comunique con alguien de nuestro equipo?"
    ),
}

RETRY_HINT = {
    "en": "If you need anything else, please try again in a moment.",
    "es": "Si necesitas algo más, por favor intenta de nuevo en un momento.",
}


def _hours_line(tenant: TenantConfig) -> Optional[str]:
    if not tenant.business_hours:
        return None
    hours = {k.lower(): v for k, v in tenant.business_hours.items()}
    if tenant.locale == "es":
        parts = [f"{DAY_NAMES_ES[d]}: {hours[d]}" for d in DAY_ORDER if d in hours]
        return "Nuestro horario es " + "; ".join(parts) + "."
    parts = [f"{d.capitalize()}: {hours[d]}" for d in DAY_ORDER if d in hours]
    return "Our hours are " + "; ".join(parts) + "."


def _location_line(tenant: TenantConfig) -> Optional[str]:
    if not tenant.address:
        return None
    if tenant.locale == "es":
        return f"Estamos en {tenant.address}."
    return f"We're located at {tenant.address}."


def fallback_text(tenant: Optional[TenantConfig], intent: Optional[str] = None) -> str:
    """Pick the degraded-mode reply for a tenant and detected intent."""
    locale = tenant.locale if tenant is not None else "en"
    lang = "es" if locale == "es" else "en"
    if tenant is not None:
        answer = None
        if intent == "hours":
            answer = _hours_line(tenant)
        elif intent == "location":
            answer = _location_line(tenant)
        if answer:
            return f"{answer} {RETRY_HINT[lang]}"
    return APOLOGY[lang]
