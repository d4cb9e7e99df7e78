"""Tests for the tenant directory, handoff and reply sink collaborators."""

import httpx
import pytest

from agent_orchestrator.collaborators import (
    HandoffRequest,
    HttpTenantDirectory,
    LoggingReplySink,
    RecordingHandoff,
    StaticTenantDirectory,
    TenantNotFoundError,
)
from agent_orchestrator.errors import TerminalSignal
from agent_orchestrator.schemas.events import Channel
from agent_orchestrator.schemas.reply import OutboundReply
from agent_orchestrator.schemas.tenant import Vertical

from tests.conftest import make_tenant

TENANT_JSON = {
    "tenant_id": "tenant-a",
    "business_name": "La Terraza",
    "vertical": "restaurant",
    "locale": "es-MX",
    "capabilities": ["reservations", "business_hours"],
}


class TestStaticDirectory:
    @pytest.mark.asyncio
    async def test_lookup(self):
        directory = StaticTenantDirectory([make_tenant()])
        assert (await directory.get_tenant("tenant-a")).business_name == "La Terraza"

    @pytest.mark.asyncio
    async def test_missing(self):
        with pytest.raises(TenantNotFoundError):
            await StaticTenantDirectory().get_tenant("tenant-a")

    @pytest.mark.asyncio
    async def test_put_replaces(self):
        directory = StaticTenantDirectory([make_tenant()])
        directory.put(make_tenant(business_name="Terraza Nueva"))
        assert (await directory.get_tenant("tenant-a")).business_name == "Terraza Nueva"


class TestHttpDirectory:
    @pytest.mark.asyncio
    async def test_fetches_and_validates(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json=TENANT_JSON)

        directory = HttpTenantDirectory("https://config.example/", "key-1", transport=httpx.MockTransport(handler))
        tenant = await directory.get_tenant("tenant-a")
        assert tenant.vertical == Vertical.RESTAURANT
        assert tenant.locale == "es"
        assert seen == {"url": "https://config.example/tenants/tenant-a", "auth": "Bearer key-1"}

    @pytest.mark.asyncio
    async def test_not_found(self):
        directory = HttpTenantDirectory(
            "https://config.example", transport=httpx.MockTransport(lambda r: httpx.Response(404))
        )
        with pytest.raises(TenantNotFoundError):
            await directory.get_tenant("tenant-x")

    @pytest.mark.asyncio
    async def test_invalid_configuration(self):
        directory = HttpTenantDirectory(
            "https://config.example",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"tenant_id": ""})),
        )
        with pytest.raises(TenantNotFoundError, match="invalid configuration"):
            await directory.get_tenant("tenant-a")

    @pytest.mark.asyncio
    async def test_server_error_propagates(self):
        directory = HttpTenantDirectory(
            "https://config.example", transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )
        with pytest.raises(httpx.HTTPStatusError):
            await directory.get_tenant("tenant-a")


class TestRecorders:
    @pytest.mark.asyncio
    async def test_handoff_recorded(self):
        handoff = RecordingHandoff()
        request = HandoffRequest("tenant-a:chat:contact-1", "tenant-a", "urgent", "my tooth hurts")
        await handoff.hand_off(request)
        assert handoff.requests == [request]

    @pytest.mark.asyncio
    async def test_sink_keeps_replies(self):
        sink = LoggingReplySink()
        reply = OutboundReply(
            conversation_key="tenant-a:chat:contact-1",
            channel=Channel.CHAT,
            text="hi",
            signal=TerminalSignal.REPLIED,
        )
        await sink.deliver(reply)
        assert sink.delivered == [reply]
