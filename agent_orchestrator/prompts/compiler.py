"""
Two-stage prompt compilation.

1. ``compile_skeleton`` renders the fixed section sequence from tenant
   identity, personality, vertical, channel and the allowed tool set.
   Pure and deterministic.
2. An ``Enricher`` fills tenant knowledge into the skeleton. It may only
   change the text of ENRICHABLE_SECTIONS; section names and order are
   checked against the skeleton after every enrichment.

The result is cached under a hash of every input to both stages.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from agent_orchestrator.agents.profiles import AgentType
from agent_orchestrator.config import PromptConfig, settings
from agent_orchestrator.errors import PromptStructureError
from agent_orchestrator.prompts import templates as tpl
from agent_orchestrator.prompts.cache import PromptCache
from agent_orchestrator.schemas.events import Channel
from agent_orchestrator.schemas.tenant import TenantConfig
from agent_orchestrator.utils import stable_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptSection:
    name: str
    text: str


@dataclass(frozen=True)
class PromptInputs:
    """Everything that determines a compiled prompt."""

    tenant: TenantConfig
    agent_type: AgentType
    channel: Channel
    allowed_tools: tuple[str, ...]
    enabled_capabilities: tuple[str, ...] = ()

    def cache_key(self, template_version: str) -> str:
        return stable_hash({
            "tenant": self.tenant.model_dump(mode="json"),
            "agent_type": self.agent_type.value,
            "channel": self.channel.value,
            "tools": sorted(self.allowed_tools),
            "capabilities": sorted(self.enabled_capabilities),
            "knowledge": {
                "version": self.tenant.knowledge_version,
                "highlights": list(self.tenant.knowledge_highlights),
            },
            "template_version": template_version,
        })


@dataclass(frozen=True)
class CompiledPrompt:
    key: str
    instructions: str
    first_message: str
    allowed_tools: tuple[str, ...]
    sections: tuple[PromptSection, ...] = field(default_factory=tuple)
    enriched: bool = False

    def section(self, name: str) -> Optional[PromptSection]:
        return next((s for s in self.sections if s.name == name), None)


class Enricher(Protocol):
    async def enrich(
        self, skeleton: tuple[PromptSection, ...], tenant: TenantConfig
    ) -> tuple[PromptSection, ...]:
        ...


class HighlightEnricher:
    """Fills the knowledge section from the tenant's knowledge highlights."""

    def __init__(self, max_highlights: int) -> None:
        self.max_highlights = max_highlights

    async def enrich(
        self, skeleton: tuple[PromptSection, ...], tenant: TenantConfig
    ) -> tuple[PromptSection, ...]:
        lang = tenant.locale
        highlights = [h.strip() for h in tenant.knowledge_highlights if h.strip()]
        highlights = highlights[: self.max_highlights]
        if highlights:
            text = "\n".join([tpl.KNOWLEDGE_HEADER[lang], *(f"- {h}" for h in highlights)])
        else:
            text = tpl.KNOWLEDGE_EMPTY[lang]
        return tuple(
            PromptSection(s.name, text) if s.name == "knowledge" else s for s in skeleton
        )


def verify_structure(
    skeleton: tuple[PromptSection, ...], enriched: tuple[PromptSection, ...]
) -> None:
    """Raise PromptStructureError unless ``enriched`` keeps the skeleton's structure."""
    before = [s.name for s in skeleton]
    after = [s.name for s in enriched]
    if before != after:
        raise PromptStructureError(f"Section sequence changed: {before} -> {after}")
    for old, new in zip(skeleton, enriched):
        if old.name in tpl.ENRICHABLE_SECTIONS:
            if not new.text.strip():
                raise PromptStructureError(f"Section '{old.name}' emptied by enrichment")
        elif old.text != new.text:
            raise PromptStructureError(f"Section '{old.name}' is not enrichable")


def render(sections: tuple[PromptSection, ...]) -> str:
    return "\n\n".join(s.text for s in sections)


class PromptCompiler:
    """Compiles, enriches and caches specialist-agent prompts."""

    def __init__(
        self,
        config: Optional[PromptConfig] = None,
        enricher: Optional[Enricher] = None,
        cache: Optional[PromptCache] = None,
    ) -> None:
        self.config = config or settings.prompts
        self.enricher = enricher or HighlightEnricher(self.config.max_knowledge_highlights)
        self.cache = cache or PromptCache(self.config.cache_ttl_sec)

    # ------------------------------------------------------------------ #
    # Stage 1
    # ------------------------------------------------------------------ #

    def compile_skeleton(self, inputs: PromptInputs) -> tuple[PromptSection, ...]:
        tenant = inputs.tenant
        lang = tenant.locale
        persona = tenant.personality

        identity = tpl.IDENTITY[lang].format(
            assistant_name=persona.assistant_name,
            business_name=tenant.business_name,
            business_type=tpl.BUSINESS_TYPE[lang][tenant.vertical],
        )
        role = tpl.AGENT_ROLES[lang][inputs.agent_type]

        if inputs.allowed_tools:
            capabilities = tpl.CAPABILITIES_HEADER[lang].format(
                tools=", ".join(sorted(inputs.allowed_tools))
            )
        else:
            capabilities = tpl.NO_TOOLS[lang]

        rules = [r.strip() for r in tenant.critical_instructions if r.strip()]
        rules = rules[: self.config.max_critical_instructions]
        if rules:
            critical = "\n".join(
                [tpl.CRITICAL_HEADER[lang], *(f"{i}. {r}" for i, r in enumerate(rules, 1))]
            )
        else:
            critical = tpl.NO_CRITICAL[lang]

        texts = {
            "identity": f"{identity} {role}",
            "personality": tpl.PERSONALITY[lang].format(
                tone=persona.tone, formality=persona.formality
            ),
            "capabilities": capabilities,
            "channel_rules": tpl.CHANNEL_RULES[lang][inputs.channel],
            "critical_instructions": critical,
            "knowledge": tpl.KNOWLEDGE_PENDING[lang],
            "escalation": tpl.ESCALATION_RULES[lang],
        }
        return tuple(PromptSection(name, texts[name]) for name in tpl.SECTION_ORDER)

    def first_message(self, tenant: TenantConfig) -> str:
        if tenant.personality.first_message:
            return tenant.personality.first_message
        return tpl.FIRST_MESSAGE[tenant.locale].format(
            assistant_name=tenant.personality.assistant_name,
            business_name=tenant.business_name,
        )

    # ------------------------------------------------------------------ #
    # Stage 2 + cache
    # ------------------------------------------------------------------ #

    async def build(self, inputs: PromptInputs) -> CompiledPrompt:
        """Compile and enrich without touching the cache.

        An enrichment that fails or breaks the structure yields the bare
        skeleton with ``enriched=False``.
        """
        key = inputs.cache_key(self.config.template_version)
        skeleton = self.compile_skeleton(inputs)
        sections = skeleton
        enriched = False
        try:
            candidate = await self.enricher.enrich(skeleton, inputs.tenant)
            verify_structure(skeleton, candidate)
            sections, enriched = candidate, True
        except PromptStructureError as exc:
            logger.error("Enrichment rejected for tenant %s: %s", inputs.tenant.tenant_id, exc)
        except Exception:
            logger.exception("Enrichment failed for tenant %s", inputs.tenant.tenant_id)

        return CompiledPrompt(
            key=key,
            instructions=render(sections),
            first_message=self.first_message(inputs.tenant),
            allowed_tools=tuple(sorted(inputs.allowed_tools)),
            sections=sections,
            enriched=enriched,
        )

    async def get_prompt(self, inputs: PromptInputs) -> CompiledPrompt:
        """Cached prompt for ``inputs``; unenriched fallbacks are not cached."""
        key = inputs.cache_key(self.config.template_version)
        return await self.cache.get_or_compile(
            key,
            inputs.tenant.tenant_id,
            lambda: self.build(inputs),
            cacheable=lambda prompt: prompt.enriched,
        )

    def invalidate_tenant(self, tenant_id: str) -> int:
        return self.cache.invalidate_tenant(tenant_id)
