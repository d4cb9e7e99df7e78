"""
External collaborators the orchestrator talks to.

The core only depends on the protocols. Static/recording implementations
serve tests and the console session; the HTTP tenant directory reads a
tenant configuration service.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

import httpx
from pydantic import ValidationError

from agent_orchestrator.schemas.reply import OutboundReply
from agent_orchestrator.schemas.tenant import TenantConfig

logger = logging.getLogger(__name__)


class TenantNotFoundError(LookupError):
    """No configuration exists for the requested tenant."""


class TenantConfigProvider(Protocol):
    async def get_tenant(self, tenant_id: str) -> TenantConfig:
        ...


@dataclass(frozen=True)
class HandoffRequest:
    conversation_key: str
    tenant_id: str
    reason: str
    summary: str


class HumanHandoff(Protocol):
    async def hand_off(self, request: HandoffRequest) -> None:
        ...


class ReplySink(Protocol):
    async def deliver(self, reply: OutboundReply) -> None:
        ...


class StaticTenantDirectory:
    """Tenant configurations held in memory."""

    def __init__(self, tenants: Iterable[TenantConfig] = ()) -> None:
        self._tenants = {t.tenant_id: t for t in tenants}

    def put(self, tenant: TenantConfig) -> None:
        self._tenants[tenant.tenant_id] = tenant

    async def get_tenant(self, tenant_id: str) -> TenantConfig:
        try:
            return self._tenants[tenant_id]
        except KeyError:
            raise TenantNotFoundError(tenant_id) from None


class HttpTenantDirectory:
    """Reads ``GET {base_url}/tenants/{tenant_id}`` from the tenant configuration service."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def get_tenant(self, tenant_id: str) -> TenantConfig:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(f"{self._base_url}/tenants/{tenant_id}", headers=headers)
        if response.status_code == 404:
            raise TenantNotFoundError(tenant_id)
        response.raise_for_status()
        try:
            return TenantConfig.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TenantNotFoundError(f"{tenant_id}: invalid configuration") from exc


@dataclass
class RecordingHandoff:
    """Keeps handoff requests in memory."""

    requests: list[HandoffRequest] = field(default_factory=list)

    async def hand_off(self, request: HandoffRequest) -> None:
        logger.info("Handoff requested for %s (%s)", request.conversation_key, request.reason)
        self.requests.append(request)


@dataclass
class LoggingReplySink:
    """Logs replies instead of sending them; keeps them for inspection."""

    delivered: list[OutboundReply] = field(default_factory=list)

    async def deliver(self, reply: OutboundReply) -> None:
        logger.info("Reply for %s via %s (%s)", reply.conversation_key, reply.channel.value, reply.signal.value)
        self.delivered.append(reply)
