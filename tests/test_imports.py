"""Tests for import chains and module integrity.

Ensures all public modules can be imported without optional services
(API keys, databases, embedding models) and that package re-exports work.
"""

import importlib

import pytest

MODULES = [
    "agent_orchestrator.config",
    "agent_orchestrator.errors",
    "agent_orchestrator.logging_context",
    "agent_orchestrator.utils",
    "agent_orchestrator.schemas.events",
    "agent_orchestrator.schemas.tenant",
    "agent_orchestrator.schemas.conversation",
    "agent_orchestrator.schemas.reply",
    "agent_orchestrator.security.gate",
    "agent_orchestrator.security.rate_limiter",
    "agent_orchestrator.resilience.circuit_breaker",
    "agent_orchestrator.resilience.store",
    "agent_orchestrator.resilience.fallback",
    "agent_orchestrator.tools.capabilities",
    "agent_orchestrator.tools.models",
    "agent_orchestrator.tools.registry",
    "agent_orchestrator.tools.executor",
    "agent_orchestrator.tools.backends",
    "agent_orchestrator.tools.formatters",
    "agent_orchestrator.tools.common",
    "agent_orchestrator.tools.restaurant",
    "agent_orchestrator.tools.dental",
    "agent_orchestrator.knowledge.embeddings",
    "agent_orchestrator.knowledge.store",
    "agent_orchestrator.knowledge.retrieval",
    "agent_orchestrator.llm.base",
    "agent_orchestrator.llm.openai_client",
    "agent_orchestrator.prompts.templates",
    "agent_orchestrator.prompts.cache",
    "agent_orchestrator.prompts.compiler",
    "agent_orchestrator.agents.supervisor",
    "agent_orchestrator.agents.profiles",
    "agent_orchestrator.agents.router",
    "agent_orchestrator.agents.loop",
    "agent_orchestrator.conversation.state_machine",
    "agent_orchestrator.conversation.guardrails",
    "agent_orchestrator.conversation.confirmation",
    "agent_orchestrator.conversation.store",
    "agent_orchestrator.conversation.ordering",
    "agent_orchestrator.collaborators",
    "agent_orchestrator.formatter",
    "agent_orchestrator.orchestrator",
]


class TestModuleImports:
    @pytest.mark.parametrize("name", MODULES)
    def test_importable(self, name):
        assert importlib.import_module(name) is not None

    def test_console_entry_point(self):
        main = importlib.import_module("main")
        assert callable(main.main)


class TestPackageExports:
    def test_agents_package(self):
        from agent_orchestrator.agents import Intent, Router, SpecialistAgentLoop, classify_intent

        assert classify_intent("book a table") == Intent.BOOKING
        assert Router is not None
        assert SpecialistAgentLoop is not None

    def test_conversation_package(self):
        from agent_orchestrator.conversation import TurnState, TurnStateMachine

        assert TurnStateMachine().current_state == TurnState.AWAITING_REASONING


class TestDeferredLoading:
    def test_embedder_defers_model_load(self):
        from agent_orchestrator.config import RetrievalConfig
        from agent_orchestrator.knowledge.embeddings import FastEmbedEmbedder

        embedder = FastEmbedEmbedder(RetrievalConfig(embedding_model="any/model"))
        assert embedder._model is None

    def test_openai_client_defers_sdk_client(self):
        from agent_orchestrator.llm.openai_client import OpenAIClient

        assert OpenAIClient()._client is None
