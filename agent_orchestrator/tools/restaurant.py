"""Restaurant tools: reservations, menu and orders."""

from typing import Optional

from pydantic import BaseModel, Field

from agent_orchestrator.tools.capabilities import Capability
from agent_orchestrator.tools.formatters import (
    format_code,
    format_date,
    format_list,
    format_party_size,
    format_price,
    format_time,
)
from agent_orchestrator.tools.models import ToolContext, ToolDefinition, ToolResult

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class ReservationAvailabilityParams(BaseModel):
    date: str = Field(pattern=DATE_PATTERN, description="Reservation date (YYYY-MM-DD).")
    time: str = Field(pattern=TIME_PATTERN, description="Reservation time (HH:MM, 24h).")
    party_size: int = Field(ge=1, le=20, description="Number of guests.")


class CreateReservationParams(ReservationAvailabilityParams):
    name: str = Field(min_length=2, description="Name the reservation is under.")
    phone: Optional[str] = Field(default=None, description="Contact phone number.")
    notes: Optional[str] = Field(default=None, description="Special requests, e.g. terrace or birthday.")


class CancelReservationParams(BaseModel):
    confirmation_code: str = Field(min_length=3, description="Confirmation code given when booking.")


class MenuParams(BaseModel):
    category: Optional[str] = Field(
        default=None, description="Menu section: starters, mains, desserts or drinks."
    )


class OrderItem(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1, le=50)


class CreateOrderParams(BaseModel):
    name: str = Field(min_length=2, description="Name for the order.")
    items: list[OrderItem] = Field(min_length=1, description="Items exactly as named on the menu.")
    pickup_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN, description="Pickup time (HH:MM).")


def _when(date: str, time: str, context: ToolContext) -> tuple[str, str]:
    return (
        format_date(date, context.locale, context.is_voice),
        format_time(time, context.locale, context.is_voice),
    )


async def check_reservation_availability(
    params: ReservationAvailabilityParams, context: ToolContext
) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "reservations.check", params.model_dump())
    day, time = _when(params.date, params.time, context)
    guests = format_party_size(params.party_size, context.locale)
    if data.get("available"):
        if context.locale == "es":
            message = f"Hay lugar para {guests} el {day} a las {time}."
        else:
            message = f"A table for {guests} is available on {day} at {time}."
        return ToolResult.ok(message, data)

    alternatives = [format_time(t, context.locale, context.is_voice) for t in data.get("alternatives", [])]
    if context.locale == "es":
        message = f"No hay lugar el {day} a las {time}."
        if alternatives:
            message += f" Horarios cercanos: {format_list(alternatives, 'es')}."
    else:
        message = f"There is no table on {day} at {time}."
        if alternatives:
            message += f" Nearby times: {format_list(alternatives, 'en')}."
    return ToolResult.ok(message, data)


def _reservation_confirmation(params: CreateReservationParams, context: ToolContext) -> str:
    day, time = _when(params.date, params.time, context)
    guests = format_party_size(params.party_size, context.locale)
    if context.locale == "es":
        text = f"Voy a reservar para {guests} el {day} a las {time} a nombre de {params.name}."
        if params.notes:
            text += f" Con la solicitud especial: {params.notes}."
        return text + " ¿Confirmas la reservación?"
    text = f"I'll book a table for {guests} on {day} at {time} under {params.name}."
    if params.notes:
        text += f" Special request: {params.notes}."
    return text + " Shall I confirm?"


async def create_reservation(params: CreateReservationParams, context: ToolContext) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "reservations.create", params.model_dump())
    day, time = _when(params.date, params.time, context)
    code = format_code(data["confirmation_code"], context.locale, context.is_voice)
    guests = format_party_size(params.party_size, context.locale)
    if context.locale == "es":
        text = f"Listo, tu mesa para {guests} quedó reservada el {day} a las {time}. Tu código de confirmación es {code}."
    else:
        text = f"Done! Your table for {guests} is booked for {day} at {time}. Your confirmation code is {code}."
    return ToolResult.ok(text, data, confirmation_text=text)


def _cancel_confirmation(params: CancelReservationParams, context: ToolContext) -> str:
    code = format_code(params.confirmation_code, context.locale, context.is_voice)
    if context.locale == "es":
        return f"Voy a cancelar la reservación {code}. ¿Confirmas?"
    return f"I'll cancel reservation {code}. Shall I go ahead?"


async def cancel_reservation(params: CancelReservationParams, context: ToolContext) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "reservations.cancel", params.model_dump())
    code = format_code(data["confirmation_code"], context.locale, context.is_voice)
    if context.locale == "es":
        text = f"La reservación {code} fue cancelada."
    else:
        text = f"Reservation {code} has been cancelled."
    return ToolResult.ok(text, data, confirmation_text=text)


async def get_menu(params: MenuParams, context: ToolContext) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "menu.get", params.model_dump())
    items = data.get("items", [])
    if not items:
        if context.locale == "es":
            return ToolResult.ok("No encontré platillos en esa sección del menú.", data)
        return ToolResult.ok("I couldn't find anything in that part of the menu.", data)
    described = [f"{i['name']} ({format_price(i['price'])})" for i in items]
    return ToolResult.ok(format_list(described, context.locale), data)


def _order_confirmation(params: CreateOrderParams, context: ToolContext) -> str:
    lines = format_list([f"{item.quantity} {item.name}" for item in params.items], context.locale)
    if context.locale == "es":
        text = f"Tu pedido a nombre de {params.name}: {lines}."
        if params.pickup_time:
            text += f" Para recoger a las {format_time(params.pickup_time, 'es', context.is_voice)}."
        return text + " ¿Lo confirmo?"
    text = f"Your order under {params.name}: {lines}."
    if params.pickup_time:
        text += f" Pickup at {format_time(params.pickup_time, 'en', context.is_voice)}."
    return text + " Shall I place it?"


async def create_order(params: CreateOrderParams, context: ToolContext) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "orders.create", params.model_dump())
    code = format_code(data["order_code"], context.locale, context.is_voice)
    total = format_price(data["total"])
    if context.locale == "es":
        text = f"Tu pedido quedó registrado. Total: {total}. Tu número de pedido es {code}."
    else:
        text = f"Your order is in. The total is {total}. Your order number is {code}."
    return ToolResult.ok(text, data, confirmation_text=text)


TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name="check_reservation_availability",
        description="Check whether a table is available for a date, time and party size.",
        params=ReservationAvailabilityParams,
        required_capabilities=frozenset({Capability.RESERVATIONS}),
        handler=check_reservation_availability,
        category="booking",
        timeout_sec=8.0,
    ),
    ToolDefinition(
        name="create_reservation",
        description="Book a table. Check availability first. Requires the customer's confirmation.",
        params=CreateReservationParams,
        required_capabilities=frozenset({Capability.RESERVATIONS}),
        handler=create_reservation,
        category="booking",
        requires_confirmation=True,
        confirmation_message=_reservation_confirmation,
        timeout_sec=10.0,
    ),
    ToolDefinition(
        name="cancel_reservation",
        description="Cancel an existing reservation by its confirmation code. Requires confirmation.",
        params=CancelReservationParams,
        required_capabilities=frozenset({Capability.RESERVATIONS}),
        handler=cancel_reservation,
        category="booking",
        requires_confirmation=True,
        confirmation_message=_cancel_confirmation,
        timeout_sec=10.0,
    ),
    ToolDefinition(
        name="get_menu",
        description="List menu items with prices, optionally for one section.",
        params=MenuParams,
        required_capabilities=frozenset({Capability.MENU_INFO}),
        handler=get_menu,
        category="info",
        timeout_sec=8.0,
    ),
    ToolDefinition(
        name="create_order",
        description="Place a pickup order using item names from the menu. Requires confirmation.",
        params=CreateOrderParams,
        required_capabilities=frozenset({Capability.ORDERS}),
        handler=create_order,
        category="orders",
        requires_confirmation=True,
        confirmation_message=_order_confirmation,
        timeout_sec=10.0,
    ),
]
