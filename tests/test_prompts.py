"""Tests for prompt compilation, enrichment and the compiled-prompt cache."""

import asyncio

import pytest

from agent_orchestrator.agents.profiles import AgentType
from agent_orchestrator.config import PromptConfig
from agent_orchestrator.errors import PromptStructureError
from agent_orchestrator.prompts import templates as tpl
from agent_orchestrator.prompts.cache import PromptCache
from agent_orchestrator.prompts.compiler import (
    HighlightEnricher,
    PromptCompiler,
    PromptInputs,
    PromptSection,
    verify_structure,
)
from agent_orchestrator.schemas.events import Channel
from agent_orchestrator.schemas.tenant import Personality

from tests.conftest import FakeClock, make_tenant

TOOLS = ("transfer_to_human", "get_business_hours")


def _inputs(tenant=None, channel=Channel.CHAT, tools=TOOLS, agent=AgentType.INFO) -> PromptInputs:
    return PromptInputs(tenant or make_tenant(), agent, channel, tuple(tools), ("business_hours",))


class GatedEnricher:
    """Highlight enricher that waits for the test to let it finish."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.gate = asyncio.Event()
        self.calls = 0

    async def enrich(self, skeleton, tenant):
        self.calls += 1
        self.started.set()
        await self.gate.wait()
        return await HighlightEnricher(8).enrich(skeleton, tenant)


class RenamingEnricher:
    async def enrich(self, skeleton, tenant):
        return tuple(PromptSection("rules" if s.name == "identity" else s.name, s.text) for s in skeleton)


class FailingEnricher:
    async def enrich(self, skeleton, tenant):
        raise ConnectionError("knowledge service unreachable")


class TestSkeleton:
    def setup_method(self):
        self.compiler = PromptCompiler(PromptConfig())

    def test_fixed_section_order(self):
        sections = self.compiler.compile_skeleton(_inputs())
        assert tuple(s.name for s in sections) == tpl.SECTION_ORDER

    def test_deterministic(self):
        assert self.compiler.compile_skeleton(_inputs()) == self.compiler.compile_skeleton(_inputs())

    def test_identity_from_tenant(self):
        identity = self.compiler.compile_skeleton(_inputs())[0].text
        assert identity.startswith("You are Sofia, the assistant for La Terraza, a restaurant.")

    def test_capabilities_list_allowed_tools_sorted(self):
        sections = dict((s.name, s.text) for s in self.compiler.compile_skeleton(_inputs()))
        assert sections["capabilities"] == "You may use only these tools: get_business_hours, transfer_to_human."

    def test_no_tools(self):
        sections = dict((s.name, s.text) for s in self.compiler.compile_skeleton(_inputs(tools=())))
        assert sections["capabilities"] == tpl.NO_TOOLS["en"]

    def test_channel_rules(self):
        sections = dict((s.name, s.text) for s in self.compiler.compile_skeleton(_inputs(channel=Channel.VOICE)))
        assert sections["channel_rules"] == tpl.CHANNEL_RULES["en"][Channel.VOICE]

    def test_critical_instructions_capped(self):
        compiler = PromptCompiler(PromptConfig(max_critical_instructions=2))
        tenant = make_tenant(critical_instructions=["No pets inside", "  ", "Cash only", "Close at 10"])
        sections = dict((s.name, s.text) for s in compiler.compile_skeleton(_inputs(tenant)))
        assert sections["critical_instructions"] == (
            "Business rules you must always follow:\n1. No pets inside\n2. Cash only"
        )

    def test_knowledge_pending_in_skeleton(self):
        sections = dict((s.name, s.text) for s in self.compiler.compile_skeleton(_inputs()))
        assert sections["knowledge"] == tpl.KNOWLEDGE_PENDING["en"]

    def test_spanish(self):
        tenant = make_tenant(locale="es-MX")
        identity = self.compiler.compile_skeleton(_inputs(tenant))[0].text
        assert identity.startswith("Eres Sofia, asistente de La Terraza")

    def test_first_message(self):
        assert self.compiler.first_message(make_tenant()) == (
            "Hi, this is Sofia from La Terraza. How can I help you today?"
        )
        custom = make_tenant(personality=Personality(assistant_name="Sofia", first_message="¡Hola!"))
        assert self.compiler.first_message(custom) == "¡Hola!"


class TestEnrichment:
    @pytest.mark.asyncio
    async def test_highlights_filled(self):
        compiler = PromptCompiler(PromptConfig())
        tenant = make_tenant(knowledge_highlights=["Free parking after 6 PM", " ", "Dogs welcome"])
        prompt = await compiler.build(_inputs(tenant))
        assert prompt.enriched is True
        assert prompt.section("knowledge").text == (
            "Business knowledge you can rely on:\n- Free parking after 6 PM\n- Dogs welcome"
        )
        assert "Free parking after 6 PM" in prompt.instructions

    @pytest.mark.asyncio
    async def test_no_highlights(self):
        prompt = await PromptCompiler(PromptConfig()).build(_inputs())
        assert prompt.section("knowledge").text == tpl.KNOWLEDGE_EMPTY["en"]

    @pytest.mark.asyncio
    async def test_structure_violation_keeps_skeleton(self):
        compiler = PromptCompiler(PromptConfig(), enricher=RenamingEnricher())
        prompt = await compiler.build(_inputs())
        assert prompt.enriched is False
        assert prompt.section("knowledge").text == tpl.KNOWLEDGE_PENDING["en"]

    @pytest.mark.asyncio
    async def test_failing_enricher_keeps_skeleton(self):
        compiler = PromptCompiler(PromptConfig(), enricher=FailingEnricher())
        prompt = await compiler.build(_inputs())
        assert prompt.enriched is False
        assert tuple(s.name for s in prompt.sections) == tpl.SECTION_ORDER


class TestVerifyStructure:
    def setup_method(self):
        self.skeleton = PromptCompiler(PromptConfig()).compile_skeleton(_inputs())

    def _with(self, name, text):
        return tuple(PromptSection(s.name, text) if s.name == name else s for s in self.skeleton)

    def test_knowledge_may_change(self):
        verify_structure(self.skeleton, self._with("knowledge", "Parking is free."))

    def test_fixed_section_may_not_change(self):
        with pytest.raises(PromptStructureError, match="identity"):
            verify_structure(self.skeleton, self._with("identity", "You are someone else."))

    def test_knowledge_may_not_be_emptied(self):
        with pytest.raises(PromptStructureError, match="emptied"):
            verify_structure(self.skeleton, self._with("knowledge", "   "))

    def test_reordering_rejected(self):
        with pytest.raises(PromptStructureError, match="sequence"):
            verify_structure(self.skeleton, tuple(reversed(self.skeleton)))

    def test_dropping_a_section_rejected(self):
        with pytest.raises(PromptStructureError):
            verify_structure(self.skeleton, self.skeleton[:-1])


class TestCacheKey:
    def test_tool_order_irrelevant(self):
        assert _inputs().cache_key("1") == _inputs(tools=tuple(reversed(TOOLS))).cache_key("1")

    def test_knowledge_version_changes_key(self):
        old = _inputs(make_tenant(knowledge_version="3")).cache_key("1")
        new = _inputs(make_tenant(knowledge_version="4")).cache_key("1")
        assert old != new

    def test_template_version_changes_key(self):
        assert _inputs().cache_key("1") != _inputs().cache_key("2")

    def test_channel_changes_key(self):
        assert _inputs().cache_key("1") != _inputs(channel=Channel.VOICE).cache_key("1")


class TestCompilerCache:
    @pytest.mark.asyncio
    async def test_repeat_is_a_hit(self):
        compiler = PromptCompiler(PromptConfig())
        first = await compiler.get_prompt(_inputs())
        second = await compiler.get_prompt(_inputs())
        assert first is second
        assert compiler.cache.stats.compiles == 1
        assert compiler.cache.stats.hits == 1

    @pytest.mark.asyncio
    async def test_new_knowledge_version_recompiles(self):
        compiler = PromptCompiler(PromptConfig())
        await compiler.get_prompt(_inputs(make_tenant(knowledge_version="1")))
        await compiler.get_prompt(_inputs(make_tenant(knowledge_version="2")))
        assert compiler.cache.stats.compiles == 2

    @pytest.mark.asyncio
    async def test_unenriched_prompt_not_cached(self):
        compiler = PromptCompiler(PromptConfig(), enricher=FailingEnricher())
        await compiler.get_prompt(_inputs())
        await compiler.get_prompt(_inputs())
        assert compiler.cache.stats.compiles == 2
        assert len(compiler.cache) == 0

    @pytest.mark.asyncio
    async def test_single_flight(self):
        enricher = GatedEnricher()
        compiler = PromptCompiler(PromptConfig(), enricher=enricher)
        first = asyncio.create_task(compiler.get_prompt(_inputs()))
        await enricher.started.wait()
        second = asyncio.create_task(compiler.get_prompt(_inputs()))
        await asyncio.sleep(0)
        enricher.gate.set()
        a, b = await asyncio.gather(first, second)
        assert a is b
        assert enricher.calls == 1
        assert compiler.cache.stats.compiles == 1

    @pytest.mark.asyncio
    async def test_invalidation_during_compile_not_stored(self):
        enricher = GatedEnricher()
        compiler = PromptCompiler(PromptConfig(), enricher=enricher)
        task = asyncio.create_task(compiler.get_prompt(_inputs()))
        await enricher.started.wait()
        assert compiler.invalidate_tenant("tenant-a") == 1
        enricher.gate.set()
        prompt = await task
        assert prompt.enriched is True
        assert len(compiler.cache) == 0

    @pytest.mark.asyncio
    async def test_invalidate_tenant_leaves_others(self):
        compiler = PromptCompiler(PromptConfig())
        await compiler.get_prompt(_inputs())
        await compiler.get_prompt(_inputs(make_tenant(tenant_id="tenant-b")))
        assert compiler.invalidate_tenant("tenant-a") == 1
        assert len(compiler.cache) == 1


class TestPromptCache:
    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        clock = FakeClock()
        cache = PromptCache(10, clock=clock)

        async def compile_value():
            return "prompt"

        await cache.get_or_compile("k", "tenant-a", compile_value)
        clock.advance(9)
        assert cache.get("k") == "prompt"
        clock.advance(2)
        assert cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_compile_error_propagates_and_is_not_cached(self):
        cache = PromptCache(10)

        async def broken():
            raise RuntimeError("template missing")

        with pytest.raises(RuntimeError):
            await cache.get_or_compile("k", "tenant-a", broken)
        assert len(cache) == 0

        async def fixed():
            return "prompt"

        assert await cache.get_or_compile("k", "tenant-a", fixed) == "prompt"

    @pytest.mark.asyncio
    async def test_waiters_see_compile_error(self):
        cache = PromptCache(10)
        started = asyncio.Event()
        release = asyncio.Event()

        async def broken():
            started.set()
            await release.wait()
            raise RuntimeError("template missing")

        first = asyncio.create_task(cache.get_or_compile("k", "tenant-a", broken))
        await started.wait()
        second = asyncio.create_task(cache.get_or_compile("k", "tenant-a", broken))
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second, return_exceptions=True)
        assert all(isinstance(r, RuntimeError) for r in results)

    @pytest.mark.asyncio
    async def test_cancelled_compile_fails_waiters_with_error(self):
        cache = PromptCache(10)
        started = asyncio.Event()

        async def stuck():
            started.set()
            await asyncio.Event().wait()

        first = asyncio.create_task(cache.get_or_compile("k", "tenant-a", stuck))
        await started.wait()
        second = asyncio.create_task(cache.get_or_compile("k", "tenant-a", stuck))
        await asyncio.sleep(0)
        first.cancel()
        with pytest.raises(RuntimeError, match="cancelled"):
            await second
        with pytest.raises(asyncio.CancelledError):
            await first
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_invalidate_single_key(self):
        cache = PromptCache(10)

        async def compile_value():
            return "prompt"

        await cache.get_or_compile("k", "tenant-a", compile_value)
        cache.invalidate("k")
        assert cache.get("k") is None
        assert cache.stats.invalidations == 1

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = PromptCache(10)

        async def compile_value():
            return "prompt"

        await cache.get_or_compile("a", "tenant-a", compile_value)
        await cache.get_or_compile("b", "tenant-b", compile_value)
        cache.clear()
        assert len(cache) == 0
