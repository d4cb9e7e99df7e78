"""Dental clinic tools: appointments, services and insurance."""

from typing import Optional

from pydantic import BaseModel, Field

from agent_orchestrator.tools.capabilities import Capability
from agent_orchestrator.tools.formatters import format_code, format_date, format_list, format_time
from agent_orchestrator.tools.models import ToolContext, ToolDefinition, ToolResult
from agent_orchestrator.tools.restaurant import DATE_PATTERN, TIME_PATTERN


class AppointmentAvailabilityParams(BaseModel):
    date: str = Field(pattern=DATE_PATTERN, description="Appointment date (YYYY-MM-DD).")
    time: Optional[str] = Field(default=None, pattern=TIME_PATTERN, description="Preferred time (HH:MM).")
    service: Optional[str] = Field(default=None, description="Treatment, e.g. cleaning.")


class CreateAppointmentParams(BaseModel):
    name: str = Field(min_length=2, description="Patient's full name.")
    date: str = Field(pattern=DATE_PATTERN, description="Appointment date (YYYY-MM-DD).")
    time: str = Field(pattern=TIME_PATTERN, description="Appointment time (HH:MM).")
    service: str = Field(min_length=2, description="Treatment to book.")
    phone: Optional[str] = Field(default=None, description="Patient's phone number.")


class CancelAppointmentParams(BaseModel):
    confirmation_code: str = Field(min_length=3, description="Appointment confirmation code.")


class ServicesParams(BaseModel):
    pass


class InsuranceParams(BaseModel):
    provider: Optional[str] = Field(default=None, description="Insurance company the patient asked about.")


async def check_appointment_availability(
    params: AppointmentAvailabilityParams, context: ToolContext
) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "appointments.check", params.model_dump())
    day = format_date(params.date, context.locale, context.is_voice)
    es = context.locale == "es"

    if params.time:
        time = format_time(params.time, context.locale, context.is_voice)
        if data.get("available"):
            message = f"Hay espacio el {day} a las {time}." if es else f"{day} at {time} is available."
            return ToolResult.ok(message, data)
        alternatives = format_list(
            [format_time(t, context.locale, context.is_voice) for t in data.get("alternatives", [])], context.locale
        )
        message = f"No hay espacio el {day} a las {time}." if es else f"{day} at {time} is taken."
        if alternatives:
            message += f" Opciones cercanas: {alternatives}." if es else f" Closest options: {alternatives}."
        return ToolResult.ok(message, data)

    slots = [format_time(t, context.locale, context.is_voice) for t in data.get("slots", [])]
    if not slots:
        message = f"No hay citas disponibles el {day}." if es else f"There are no openings on {day}."
        return ToolResult.ok(message, data)
    listed = format_list(slots[:4], context.locale)
    message = f"El {day} tenemos: {listed}." if es else f"On {day} we have {listed}."
    return ToolResult.ok(message, data)


def _appointment_confirmation(params: CreateAppointmentParams, context: ToolContext) -> str:
    day = format_date(params.date, context.locale, context.is_voice)
    time = format_time(params.time, context.locale, context.is_voice)
    if context.locale == "es":
        return f"Agendo {params.service} para {params.name} el {day} a las {time}. ¿Confirmas la cita?"
    return f"I'll book {params.service} for {params.name} on {day} at {time}. Shall I confirm?"


async def create_appointment(params: CreateAppointmentParams, context: ToolContext) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "appointments.create", params.model_dump())
    day = format_date(params.date, context.locale, context.is_voice)
    time = format_time(params.time, context.locale, context.is_voice)
    code = format_code(data["confirmation_code"], context.locale, context.is_voice)
    if context.locale == "es":
        text = f"Tu cita quedó agendada el {day} a las {time}. Tu código de confirmación es {code}."
    else:
        text = f"Your appointment is booked for {day} at {time}. Your confirmation code is {code}."
    return ToolResult.ok(text, data, confirmation_text=text)


def _cancel_confirmation(params: CancelAppointmentParams, context: ToolContext) -> str:
    code = format_code(params.confirmation_code, context.locale, context.is_voice)
    if context.locale == "es":
        return f"Voy a cancelar la cita {code}. ¿Confirmas?"
    return f"I'll cancel appointment {code}. Shall I go ahead?"


async def cancel_appointment(params: CancelAppointmentParams, context: ToolContext) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "appointments.cancel", params.model_dump())
    code = format_code(data["confirmation_code"], context.locale, context.is_voice)
    text = f"La cita {code} fue cancelada." if context.locale == "es" else f"Appointment {code} has been cancelled."
    return ToolResult.ok(text, data, confirmation_text=text)


async def get_services(params: ServicesParams, context: ToolContext) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "services.list", {})
    described = [f"{s['name']} ({s['price_range']})" for s in data.get("services", [])]
    return ToolResult.ok(format_list(described, context.locale), data)


async def get_insurance_info(params: InsuranceParams, context: ToolContext) -> ToolResult:
    data = await context.backend.call(context.tenant.tenant_id, "insurance.get", params.model_dump())
    es = context.locale == "es"
    if params.provider:
        if data.get("accepted"):
            message = f"Sí aceptamos {params.provider}." if es else f"Yes, we accept {params.provider}."
        else:
            message = f"No trabajamos con {params.provider}." if es else f"We don't work with {params.provider}."
        return ToolResult.ok(message, data)
    accepted = format_list(data.get("accepted_providers", []), context.locale)
    message = f"Aceptamos: {accepted}." if es else f"We accept {accepted}."
    return ToolResult.ok(message, data)


TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name="check_appointment_availability",
        description="Check open appointment times for a date, optionally a specific time.",
        params=AppointmentAvailabilityParams,
        required_capabilities=frozenset({Capability.APPOINTMENTS}),
        handler=check_appointment_availability,
        category="booking",
        timeout_sec=8.0,
    ),
    ToolDefinition(
        name="create_appointment",
        description="Book an appointment. Check availability first. Requires the patient's confirmation.",
        params=CreateAppointmentParams,
        required_capabilities=frozenset({Capability.APPOINTMENTS}),
        handler=create_appointment,
        category="booking",
        requires_confirmation=True,
        confirmation_message=_appointment_confirmation,
        timeout_sec=10.0,
    ),
    ToolDefinition(
        name="cancel_appointment",
        description="Cancel an appointment by its confirmation code. Requires confirmation.",
        params=CancelAppointmentParams,
        required_capabilities=frozenset({Capability.APPOINTMENT_MANAGEMENT}),
        handler=cancel_appointment,
        category="booking",
        requires_confirmation=True,
        confirmation_message=_cancel_confirmation,
        timeout_sec=10.0,
    ),
    ToolDefinition(
        name="get_services",
        description="List the clinic's treatments with price ranges.",
        params=ServicesParams,
        required_capabilities=frozenset({Capability.SERVICES_INFO}),
        handler=get_services,
        category="info",
        timeout_sec=8.0,
    ),
    ToolDefinition(
        name="get_insurance_info",
        description="Tell which insurance providers the clinic accepts, or whether a given one is accepted.",
        params=InsuranceParams,
        required_capabilities=frozenset({Capability.INSURANCE_INFO}),
        handler=get_insurance_info,
        category="info",
        timeout_sec=8.0,
    ),
]
