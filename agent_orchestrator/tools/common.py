"""Tools shared by every vertical: business hours/info, knowledge search, handoff."""

import logging
from typing import Optional

from pydantic import BaseModel, Field

from agent_orchestrator.tools.capabilities import Capability
from agent_orchestrator.tools.formatters import format_list
from agent_orchestrator.tools.models import ToolContext, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)

DAY_ORDER = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
DAY_NAMES_ES = {
    "monday": "lunes", "tuesday": "martes", "wednesday": "miércoles", "thursday": "jueves",
    "friday": "viernes", "saturday": "sábado", "sunday": "domingo",
}


class BusinessHoursParams(BaseModel):
    day: Optional[str] = Field(
        default=None, description="Day of the week in English, e.g. 'saturday'. Omit for the whole week."
    )


class BusinessInfoParams(BaseModel):
    pass


class KnowledgeSearchParams(BaseModel):
    query: str = Field(min_length=2, description="What the customer wants to know, in their own words.")
    category: Optional[str] = Field(default=None, description="Optional knowledge category filter.")


class TransferParams(BaseModel):
    reason: str = Field(min_length=2, description="Why the customer needs a person.")


def _day_label(day: str, locale: str) -> str:
    return DAY_NAMES_ES.get(day, day) if locale == "es" else day.capitalize()


async def get_business_hours(params: BusinessHoursParams, context: ToolContext) -> ToolResult:
    hours = {k.lower(): v for k, v in context.tenant.business_hours.items()}
    if not hours:
        return ToolResult.fail("not_configured", "Business hours are not configured for this location.")

    closed = "cerrado" if context.locale == "es" else "closed"
    if params.day:
        day = params.day.strip().lower()
        if day not in DAY_ORDER:
            return ToolResult.fail("invalid_day", f"'{params.day}' is not a day of the week.")
        value = hours.get(day, closed)
        return ToolResult.ok(f"{_day_label(day, context.locale)}: {value}", {"day": day, "hours": value})

    lines = [f"{_day_label(day, context.locale)}: {hours.get(day, closed)}" for day in DAY_ORDER]
    return ToolResult.ok("; ".join(lines), {"hours": {day: hours.get(day, closed) for day in DAY_ORDER}})


async def get_business_info(params: BusinessInfoParams, context: ToolContext) -> ToolResult:
    tenant = context.tenant
    info = {"name": tenant.business_name, "address": tenant.address, "phone": tenant.phone}
    parts = [tenant.business_name]
    if tenant.address:
        parts.append(tenant.address)
    if tenant.phone:
        parts.append(tenant.phone)
    return ToolResult.ok(". ".join(parts), info)


async def search_knowledge_base(params: KnowledgeSearchParams, context: ToolContext) -> ToolResult:
    if context.retriever is None:
        return ToolResult.fail("not_configured", "Knowledge search is not available.")

    result = await context.retriever.search(
        params.query, tenant_id=context.tenant.tenant_id, category=params.category
    )
    if result.empty:
        return ToolResult.ok(
            "No relevant information was found. Do not guess: answer only with what you "
            "know for certain or offer to connect the customer with the team.",
            {"results": [], "low_confidence": True},
        )
    snippets = [
        {"content": s.chunk.content, "category": s.chunk.category, "score": round(s.score, 3)}
        for s in result.chunks
    ]
    return ToolResult.ok(
        format_list([s["content"] for s in snippets], context.locale),
        {"results": snippets, "low_confidence": False},
    )


async def transfer_to_human(params: TransferParams, context: ToolContext) -> ToolResult:
    logger.info("Transfer to human requested for %s", context.conversation_key)
    if context.locale == "es":
        message = "Te comunico con una persona de nuestro equipo."
    else:
        message = "I'm connecting you with a member of our team."
    return ToolResult.ok(message, {"handoff": True, "reason": params.reason})


TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name="get_business_hours",
        description="Get the business opening hours for a given day or the whole week.",
        params=BusinessHoursParams,
        required_capabilities=frozenset({Capability.BUSINESS_HOURS}),
        handler=get_business_hours,
        category="info",
        timeout_sec=5.0,
    ),
    ToolDefinition(
        name="get_business_info",
        description="Get the business name, address and phone number.",
        params=BusinessInfoParams,
        required_capabilities=frozenset({Capability.BUSINESS_INFO}),
        handler=get_business_info,
        category="info",
        timeout_sec=5.0,
    ),
    ToolDefinition(
        name="search_knowledge_base",
        description=(
            "Search the business knowledge base (policies, FAQs, details). "
            "Use it before answering questions you are not certain about."
        ),
        params=KnowledgeSearchParams,
        required_capabilities=frozenset({Capability.FAQ}),
        handler=search_knowledge_base,
        category="info",
        timeout_sec=8.0,
    ),
    ToolDefinition(
        name="transfer_to_human",
        description="Hand the conversation to a member of staff when the customer asks for a person or you cannot help.",
        params=TransferParams,
        required_capabilities=frozenset({Capability.HUMAN_TRANSFER}),
        handler=transfer_to_human,
        category="escalation",
        timeout_sec=5.0,
    ),
]
