"""
Domain service backends behind the tool handlers.

Each tool handler talks to its domain service (reservations, orders,
appointments, catalogs) through one request/response contract:
``call(tenant_id, operation, params) -> dict``. The in-memory backend
keeps tenant-scoped records for tests and demos; ``HttpDomainBackend``
forwards the same calls to a tenant's real services.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol, TypedDict

import httpx

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """A domain service refused or failed a request."""


class DomainBackend(Protocol):
    async def call(self, tenant_id: str, operation: str, params: dict[str, Any]) -> dict[str, Any]:
        ...


class ReservationRecord(TypedDict):
    confirmation_code: str
    name: str
    date: str
    time: str
    party_size: int
    phone: str
    notes: str
    status: str
    created_at: str


class AppointmentRecord(TypedDict):
    confirmation_code: str
    name: str
    date: str
    time: str
    service: str
    phone: str
    status: str
    created_at: str


class OrderRecord(TypedDict):
    order_code: str
    name: str
    items: list[dict[str, Any]]
    total: float
    pickup_time: str
    status: str
    created_at: str


DEFAULT_MENU: list[dict[str, Any]] = [
    {"name": "Tacos al pastor", "category": "mains", "price": 9.5},
    {"name": "Enchiladas verdes", "category": "mains", "price": 11.0},
    {"name": "Guacamole", "category": "starters", "price": 6.5},
    {"name": "Sopa de tortilla", "category": "starters", "price": 7.0},
    {"name": "Churros", "category": "desserts", "price": 5.0},
    {"name": "Agua de horchata", "category": "drinks", "price": 3.0},
]

DEFAULT_SERVICES: list[dict[str, Any]] = [
    {"name": "Cleaning", "price_range": "$80 - $120", "duration_minutes": 45},
    {"name": "Check-up", "price_range": "$50 - $75", "duration_minutes": 30},
    {"name": "Whitening", "price_range": "$250 - $400", "duration_minutes": 60},
    {"name": "Filling", "price_range": "$120 - $200", "duration_minutes": 60},
    {"name": "Root canal", "price_range": "$700 - $1,100", "duration_minutes": 90},
]

DEFAULT_INSURANCE: list[str] = ["Delta Dental", "MetLife", "Cigna", "Aetna"]

RESERVATION_TIMES = [f"{h:02d}:{m:02d}" for h in range(12, 22) for m in (0, 30)]
RESERVATION_CAPACITY = 40
APPOINTMENT_TIMES = [f"{h:02d}:00" for h in range(9, 17) if h != 13]
APPOINTMENT_CHAIRS = 2
MAX_ALTERNATIVES = 3


def _new_code(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:6].upper()}"


def _nearest(times: list[str], wanted: str, limit: int = MAX_ALTERNATIVES) -> list[str]:
    def distance(slot: str) -> int:
        h1, m1 = (int(x) for x in slot.split(":"))
        h2, m2 = (int(x) for x in wanted.split(":"))
        return abs((h1 * 60 + m1) - (h2 * 60 + m2))

    return sorted(times, key=lambda slot: (distance(slot), slot))[:limit]


class InMemoryDomainBackend:
    """Tenant-scoped in-process stand-in for the booking/order/catalog services."""

    def __init__(self) -> None:
        self._reservations: dict[str, dict[str, ReservationRecord]] = {}
        self._appointments: dict[str, dict[str, AppointmentRecord]] = {}
        self._orders: dict[str, dict[str, OrderRecord]] = {}
        self._menus: dict[str, list[dict[str, Any]]] = {}
        self._services: dict[str, list[dict[str, Any]]] = {}
        self._insurance: dict[str, list[str]] = {}
        self.calls: list[tuple[str, str]] = []
        self._operations: dict[str, Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            "reservations.check": self._check_reservation,
            "reservations.create": self._create_reservation,
            "reservations.cancel": self._cancel_reservation,
            "menu.get": self._get_menu,
            "orders.create": self._create_order,
            "appointments.check": self._check_appointment,
            "appointments.create": self._create_appointment,
            "appointments.cancel": self._cancel_appointment,
            "services.list": self._list_services,
            "insurance.get": self._get_insurance,
        }

    async def call(self, tenant_id: str, operation: str, params: dict[str, Any]) -> dict[str, Any]:
        handler = self._operations.get(operation)
        if handler is None:
            raise BackendError(f"Unsupported operation '{operation}'")
        self.calls.append((tenant_id, operation))
        return await handler(tenant_id, params)

    def seed_menu(self, tenant_id: str, items: list[dict[str, Any]]) -> None:
        self._menus[tenant_id] = list(items)

    def seed_services(self, tenant_id: str, services: list[dict[str, Any]]) -> None:
        self._services[tenant_id] = list(services)

    def seed_insurance(self, tenant_id: str, providers: list[str]) -> None:
        self._insurance[tenant_id] = list(providers)

    def reservations(self, tenant_id: str) -> list[ReservationRecord]:
        return list(self._reservations.get(tenant_id, {}).values())

    def appointments(self, tenant_id: str) -> list[AppointmentRecord]:
        return list(self._appointments.get(tenant_id, {}).values())

    def orders(self, tenant_id: str) -> list[OrderRecord]:
        return list(self._orders.get(tenant_id, {}).values())

    # ------------------------------------------------------------------ #
    # Reservations
    # ------------------------------------------------------------------ #

    def _covers_at(self, tenant_id: str, date: str, time: str) -> int:
        return sum(
            r["party_size"]
            for r in self._reservations.get(tenant_id, {}).values()
            if r["date"] == date and r["time"] == time and r["status"] == "confirmed"
        )

    def _reservation_open(self, tenant_id: str, date: str, time: str, party_size: int) -> bool:
        if time not in RESERVATION_TIMES:
            return False
        return self._covers_at(tenant_id, date, time) + party_size <= RESERVATION_CAPACITY

    async def _check_reservation(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        date, time, party_size = params["date"], params["time"], params["party_size"]
        if self._reservation_open(tenant_id, date, time, party_size):
            return {"available": True, "date": date, "time": time, "alternatives": []}
        open_times = [t for t in RESERVATION_TIMES if self._reservation_open(tenant_id, date, t, party_size)]
        return {
            "available": False,
            "date": date,
            "time": time,
            "alternatives": _nearest(open_times, time),
        }

    async def _create_reservation(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self._reservation_open(tenant_id, params["date"], params["time"], params["party_size"]):
            raise BackendError(f"No capacity on {params['date']} at {params['time']}")
        code = _new_code("R")
        record: ReservationRecord = {
            "confirmation_code": code,
            "name": params["name"],
            "date": params["date"],
            "time": params["time"],
            "party_size": params["party_size"],
            "phone": params.get("phone") or "",
            "notes": params.get("notes") or "",
            "status": "confirmed",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self._reservations.setdefault(tenant_id, {})[code] = record
        logger.info("Reservation created: %s on %s at %s", code, record["date"], record["time"])
        return dict(record)

    async def _cancel_reservation(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        code = params["confirmation_code"].upper()
        record = self._reservations.get(tenant_id, {}).get(code)
        if record is None:
            raise BackendError(f"Reservation {code} not found")
        record["status"] = "cancelled"
        logger.info("Reservation cancelled: %s", code)
        return dict(record)

    # ------------------------------------------------------------------ #
    # Menu and orders
    # ------------------------------------------------------------------ #

    async def _get_menu(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        items = self._menus.get(tenant_id, DEFAULT_MENU)
        category = params.get("category")
        if category:
            items = [i for i in items if i["category"].lower() == category.lower()]
        return {"items": items}

    async def _create_order(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        prices = {i["name"].lower(): i["price"] for i in self._menus.get(tenant_id, DEFAULT_MENU)}
        lines = []
        unknown = []
        for item in params["items"]:
            price = prices.get(item["name"].lower())
            if price is None:
                unknown.append(item["name"])
                continue
            lines.append({"name": item["name"], "quantity": item["quantity"], "price": price})
        if unknown:
            raise BackendError(f"Items not on the menu: {', '.join(unknown)}")
        code = _new_code("O")
        record: OrderRecord = {
            "order_code": code,
            "name": params["name"],
            "items": lines,
            "total": round(sum(line["price"] * line["quantity"] for line in lines), 2),
            "pickup_time": params.get("pickup_time") or "",
            "status": "received",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self._orders.setdefault(tenant_id, {})[code] = record
        logger.info("Order created: %s (%d lines)", code, len(lines))
        return dict(record)

    # ------------------------------------------------------------------ #
    # Appointments and catalogs
    # ------------------------------------------------------------------ #

    def _chairs_taken(self, tenant_id: str, date: str, time: str) -> int:
        return sum(
            1
            for a in self._appointments.get(tenant_id, {}).values()
            if a["date"] == date and a["time"] == time and a["status"] == "confirmed"
        )

    async def _check_appointment(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        date = params["date"]
        open_times = [t for t in APPOINTMENT_TIMES if self._chairs_taken(tenant_id, date, t) < APPOINTMENT_CHAIRS]
        wanted = params.get("time")
        if wanted:
            return {
                "available": wanted in open_times,
                "date": date,
                "time": wanted,
                "alternatives": [] if wanted in open_times else _nearest(open_times, wanted),
            }
        return {"available": bool(open_times), "date": date, "slots": open_times}

    async def _create_appointment(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        date, time = params["date"], params["time"]
        if time not in APPOINTMENT_TIMES or self._chairs_taken(tenant_id, date, time) >= APPOINTMENT_CHAIRS:
            raise BackendError(f"No appointment available on {date} at {time}")
        code = _new_code("A")
        record: AppointmentRecord = {
            "confirmation_code": code,
            "name": params["name"],
            "date": date,
            "time": time,
            "service": params["service"],
            "phone": params.get("phone") or "",
            "status": "confirmed",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self._appointments.setdefault(tenant_id, {})[code] = record
        logger.info("Appointment created: %s on %s at %s", code, date, time)
        return dict(record)

    async def _cancel_appointment(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        code = params["confirmation_code"].upper()
        record = self._appointments.get(tenant_id, {}).get(code)
        if record is None:
            raise BackendError(f"Appointment {code} not found")
        record["status"] = "cancelled"
        logger.info("Appointment cancelled: %s", code)
        return dict(record)

    async def _list_services(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        return {"services": self._services.get(tenant_id, DEFAULT_SERVICES)}

    async def _get_insurance(self, tenant_id: str, params: dict[str, Any]) -> dict[str, Any]:
        accepted = self._insurance.get(tenant_id, DEFAULT_INSURANCE)
        provider: Optional[str] = params.get("provider")
        if provider:
            match = next((p for p in accepted if p.lower() == provider.strip().lower()), None)
            return {"provider": provider, "accepted": match is not None, "accepted_providers": accepted}
        return {"accepted_providers": accepted}


class HttpDomainBackend:
    """Forwards tool calls to a tenant's domain services over HTTP.

    ``POST {base_url}/{operation}`` with JSON ``{"tenant_id", "params"}``;
    any non-2xx response or transport error is a ``BackendError``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def call(self, tenant_id: str, operation: str, params: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        url = f"{self._base_url}/{operation.replace('.', '/')}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json={"tenant_id": tenant_id, "params": params},
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise BackendError(
                f"{operation} failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendError(f"{operation} failed: {exc}") from exc
        except ValueError as exc:
            raise BackendError(f"{operation} returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise BackendError(f"{operation} returned a non-object payload")
        return data
