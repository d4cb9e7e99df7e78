"""
Orchestrator: security gate -> breaker -> supervisor -> router -> agent loop -> formatter.

One inbound event produces at most one reply. Turns for the same
conversation run one at a time in arrival order; turns for different
conversations and tenants run concurrently. A retried delivery (same
idempotency key inside the replay window) gets the original reply back
with a DUPLICATE signal and changes nothing.

Apart from a gate rejection, every event gets a user-visible reply: any
exception inside a turn is converted into the degraded-mode fallback.
"""

import logging
import uuid
from typing import Optional

from agent_orchestrator.agents.loop import SpecialistAgentLoop, TurnInput, TurnResult
from agent_orchestrator.agents.profiles import AgentType
from agent_orchestrator.agents.router import RouteDecision, Router
from agent_orchestrator.agents.supervisor import Intent, IntentSupervisor
from agent_orchestrator.collaborators import (
    HandoffRequest,
    HumanHandoff,
    LoggingReplySink,
    RecordingHandoff,
    ReplySink,
    TenantConfigProvider,
)
from agent_orchestrator.config import AppConfig, settings
from agent_orchestrator.conversation.confirmation import ConfirmationReply, parse_confirmation
from agent_orchestrator.conversation.ordering import KeyedLock
from agent_orchestrator.conversation.store import InMemoryConversationStore
from agent_orchestrator.errors import OutcomeCategory, TerminalSignal
from agent_orchestrator.formatter import ResponseFormatter
from agent_orchestrator.knowledge.retrieval import KnowledgeRetriever
from agent_orchestrator.llm.base import LLMClient
from agent_orchestrator.logging_context import get_turn_logger, set_turn_context
from agent_orchestrator.prompts.compiler import PromptCompiler, PromptInputs
from agent_orchestrator.resilience.circuit_breaker import REASON_OPEN, REASON_TRIAL_BUSY, CircuitBreaker
from agent_orchestrator.resilience.fallback import fallback_text
from agent_orchestrator.resilience.store import JsonFileBreakerStore
from agent_orchestrator.schemas.conversation import Conversation, PendingAction, Role
from agent_orchestrator.schemas.events import Channel, InboundEvent, RawEvent
from agent_orchestrator.schemas.reply import OutboundReply
from agent_orchestrator.schemas.tenant import TenantConfig
from agent_orchestrator.security.gate import SecurityGate
from agent_orchestrator.tools.backends import DomainBackend
from agent_orchestrator.tools.executor import ToolExecutor
from agent_orchestrator.tools.registry import ToolRegistry

logger = get_turn_logger(__name__)

# Breaker fallbacks served without running the turn
NOT_DISPATCHED = frozenset({REASON_OPEN, REASON_TRIAL_BUSY})


class Orchestrator:
    """Composes the orchestration pipeline for every tenant and channel."""

    def __init__(
        self,
        tenants: TenantConfigProvider,
        llm: LLMClient,
        backend: DomainBackend,
        *,
        config: Optional[AppConfig] = None,
        gate: Optional[SecurityGate] = None,
        breaker: Optional[CircuitBreaker] = None,
        registry: Optional[ToolRegistry] = None,
        supervisor: Optional[IntentSupervisor] = None,
        compiler: Optional[PromptCompiler] = None,
        store: Optional[InMemoryConversationStore] = None,
        retriever: Optional[KnowledgeRetriever] = None,
        handoff: Optional[HumanHandoff] = None,
        sink: Optional[ReplySink] = None,
        formatter: Optional[ResponseFormatter] = None,
        loop: Optional[SpecialistAgentLoop] = None,
    ) -> None:
        self.config = config or settings
        self.tenants = tenants
        self.backend = backend
        self.registry = registry or ToolRegistry()
        self.gate = gate or SecurityGate(config=self.config.security)
        if breaker is None:
            store_path = self.config.breaker.state_file
            breaker = CircuitBreaker(
                self.config.breaker,
                JsonFileBreakerStore(store_path) if store_path else None,
            )
        self.breaker = breaker
        self.supervisor = supervisor or IntentSupervisor()
        self.router = Router(self.registry)
        self.compiler = compiler or PromptCompiler(self.config.prompts)
        self.store = store or InMemoryConversationStore(self.config.security)
        self.retriever = retriever
        self.handoff = handoff or RecordingHandoff()
        self.sink = sink or LoggingReplySink()
        self.formatter = formatter or ResponseFormatter()
        self.loop = loop or SpecialistAgentLoop(
            llm,
            self.registry,
            ToolExecutor(self.registry, self.config.agent_loop),
            self.config.agent_loop,
        )
        self._locks = KeyedLock()

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    async def handle(self, raw: RawEvent) -> Optional[OutboundReply]:
        """Process a raw signed event. Returns None when the gate rejects it."""
        decision = self.gate.admit(raw)
        if not decision.admitted:
            return None
        return await self.handle_event(decision.event)

    async def handle_event(self, event: InboundEvent) -> OutboundReply:
        """Process an event that already passed the security gate."""
        set_turn_context(event.tenant_id, f"turn-{uuid.uuid4().hex[:12]}")
        async with self._locks.hold(event.conversation_key):
            duplicate = self.store.find_reply(event.conversation_key, event.idempotency_key)
            if duplicate is not None:
                logger.info("Duplicate delivery %s; returning the original reply", event.idempotency_key)
                return duplicate.model_copy(update={"signal": TerminalSignal.DUPLICATE})

            try:
                tenant = await self.tenants.get_tenant(event.tenant_id)
            except Exception:
                logger.exception("Tenant configuration unavailable for %s", event.tenant_id)
                reply = self._reply(event, self._fallback_result(None, None, None), None, None)
                await self._deliver(reply)
                return reply

            return await self._process(event, tenant)

    # ------------------------------------------------------------------ #
    # Turn
    # ------------------------------------------------------------------ #

    async def _process(self, event: InboundEvent, tenant: TenantConfig) -> OutboundReply:
        conversation = self.store.get_or_create(event)
        pending = conversation.pending_action
        self.store.append(conversation, Role.USER, event.content, event.idempotency_key)

        intent: Optional[Intent] = None
        route: Optional[RouteDecision] = None
        try:
            confirmation = parse_confirmation(event.content) if pending else ConfirmationReply.UNCLEAR
            if pending is not None and confirmation != ConfirmationReply.UNCLEAR:
                route = self.router.route_for_agent(
                    tenant.vertical, AgentType(pending.agent_type), tenant.capabilities
                )
            else:
                intent = self.supervisor.classify(event.content, tenant.vertical)
                route = self.router.route(tenant.vertical, intent, tenant.capabilities)
            logger.info(
                "Routed to %s agent (intent=%s, tools=%d)",
                route.agent_type.value, intent.value if intent else "confirmation", len(route.allowed_tools),
            )

            window = self.config.agent_loop.history_window
            history = conversation.recent(window + 1)[:-1]

            async def run_turn() -> TurnResult:
                prompt = await self.compiler.get_prompt(PromptInputs(
                    tenant=tenant,
                    agent_type=route.agent_type,
                    channel=event.channel,
                    allowed_tools=route.allowed_tools,
                    enabled_capabilities=route.enabled_capabilities,
                ))
                return await self.loop.run(TurnInput(
                    tenant=tenant,
                    conversation_key=conversation.key,
                    channel=event.channel,
                    route=route,
                    prompt=prompt,
                    user_text=event.content,
                    backend=self.backend,
                    history=history,
                    pending_action=pending,
                    confirmation=confirmation,
                    retriever=self.retriever,
                ))

            def fallback(reason: str) -> TurnResult:
                kept = pending
                if confirmation == ConfirmationReply.AFFIRM and reason not in NOT_DISPATCHED:
                    # the confirmed side effect may already have committed
                    logger.warning("Dropping pending %s after %s", pending.tool_name, reason)
                    kept = None
                return self._fallback_result(tenant, intent, kept, reason)

            result = await self.breaker.execute(
                tenant.tenant_id,
                run_turn,
                fallback,
                timeout=self._deadline(event.channel),
            )
        except Exception:
            logger.exception("Turn failed for %s; serving fallback", conversation.key)
            result = self._fallback_result(tenant, intent, pending)

        reply = self._reply(event, result, route.agent_type if route else None, intent)
        self.store.append(conversation, Role.AGENT, reply.text)
        self.store.set_pending(conversation, result.pending_action)
        self.store.remember_reply(conversation.key, event.idempotency_key, reply)

        if result.escalated:
            await self._hand_off(conversation, tenant, result)
        await self._deliver(reply)
        return reply

    def _deadline(self, channel: Channel) -> float:
        loop_config = self.config.agent_loop
        if channel == Channel.VOICE:
            return loop_config.voice_deadline_sec
        if channel == Channel.WHATSAPP:
            return loop_config.whatsapp_deadline_sec
        return loop_config.chat_deadline_sec

    @staticmethod
    def _fallback_result(
        tenant: Optional[TenantConfig],
        intent: Optional[Intent],
        pending: Optional[PendingAction],
        reason: str = "error",
    ) -> TurnResult:
        logger.warning("Serving degraded-mode reply (%s)", reason)
        return TurnResult(
            text=fallback_text(tenant, intent.value if intent else None),
            signal=TerminalSignal.FALLBACK,
            outcome=OutcomeCategory.ISOLATED,
            pending_action=pending,
        )

    def _reply(
        self,
        event: InboundEvent,
        result: TurnResult,
        agent: Optional[AgentType],
        intent: Optional[Intent],
    ) -> OutboundReply:
        formatted = self.formatter.format(result.text, event.channel)
        return OutboundReply(
            conversation_key=event.conversation_key,
            channel=event.channel,
            text=formatted.text,
            signal=result.signal,
            outcome=result.outcome,
            action=result.action,
            hints=formatted.hints,
            agent=agent.value if agent else None,
            intent=intent.value if intent else None,
            idempotency_key=event.idempotency_key,
        )

    # ------------------------------------------------------------------ #
    # Collaborators
    # ------------------------------------------------------------------ #

    async def _hand_off(self, conversation: Conversation, tenant: TenantConfig, result: TurnResult) -> None:
        recent = [m.content for m in conversation.recent(6) if m.role == Role.USER]
        request = HandoffRequest(
            conversation_key=conversation.key,
            tenant_id=tenant.tenant_id,
            reason=result.escalation_reason or "escalation",
            summary=" | ".join(recent[-3:]),
        )
        try:
            await self.handoff.hand_off(request)
        except Exception:
            logger.exception("Human handoff failed for %s", conversation.key)

    async def _deliver(self, reply: OutboundReply) -> None:
        try:
            await self.sink.deliver(reply)
        except Exception:
            logger.exception("Reply delivery failed for %s", reply.conversation_key)
