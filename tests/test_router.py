"""Tests for agent and tool routing."""

from itertools import combinations

import pytest

from agent_orchestrator.agents.profiles import AgentType
from agent_orchestrator.agents.router import Router
from agent_orchestrator.agents.supervisor import Intent
from agent_orchestrator.schemas.tenant import Vertical
from agent_orchestrator.tools.capabilities import resolve_capabilities

from tests.conftest import DENTAL_CAPABILITIES, RESTAURANT_CAPABILITIES


def _subsets(names):
    for size in range(len(names) + 1):
        yield from combinations(names, size)


@pytest.fixture
def router(registry):
    return Router(registry)


class TestRouting:
    def test_restaurant_booking(self, router):
        decision = router.route(Vertical.RESTAURANT, Intent.BOOKING, RESTAURANT_CAPABILITIES)
        assert decision.agent_type == AgentType.BOOKING
        assert "create_reservation" in decision.allowed_tools
        assert "check_reservation_availability" in decision.allowed_tools
        assert decision.fell_back is False

    def test_allowed_tools_sorted(self, router):
        decision = router.route(Vertical.RESTAURANT, Intent.BOOKING, RESTAURANT_CAPABILITIES)
        assert list(decision.allowed_tools) == sorted(decision.allowed_tools)

    def test_urgent_goes_to_escalation(self, router):
        decision = router.route(Vertical.DENTAL, Intent.URGENT, DENTAL_CAPABILITIES)
        assert decision.agent_type == AgentType.ESCALATION
        assert decision.allowed_tools == ("transfer_to_human",)

    def test_unrouted_intent_goes_to_info(self, router):
        decision = router.route(Vertical.RESTAURANT, Intent.HOURS, RESTAURANT_CAPABILITIES)
        assert decision.agent_type == AgentType.INFO
        assert "get_business_hours" in decision.allowed_tools

    def test_general_vertical_has_no_domain_tools(self, router):
        decision = router.route(Vertical.GENERAL, Intent.BOOKING, RESTAURANT_CAPABILITIES)
        assert decision.agent_type == AgentType.INFO
        assert "create_reservation" not in decision.allowed_tools

    def test_unknown_capabilities_ignored(self, router):
        decision = router.route(Vertical.RESTAURANT, Intent.HOURS, ["business_hours", "time_travel"])
        assert decision.enabled_capabilities == ("business_hours",)
        assert decision.allowed_tools == ("get_business_hours",)

    def test_route_for_agent(self, router):
        decision = router.route_for_agent(Vertical.RESTAURANT, AgentType.BOOKING, RESTAURANT_CAPABILITIES)
        assert decision.agent_type == AgentType.BOOKING
        assert decision.intent is None


class TestCapabilityFallback:
    def test_dental_insurance_without_capability(self, router):
        capabilities = [c for c in DENTAL_CAPABILITIES if c != "insurance_info"]
        decision = router.route(Vertical.DENTAL, Intent.INSURANCE, capabilities)
        assert decision.agent_type == AgentType.GENERAL
        assert decision.requested_agent == AgentType.INSURANCE
        assert decision.fell_back is True
        assert decision.unavailable_capabilities == ("insurance_info",)
        assert "get_insurance_info" not in decision.allowed_tools

    def test_booking_without_reservations(self, router):
        capabilities = [c for c in RESTAURANT_CAPABILITIES if c != "reservations"]
        decision = router.route(Vertical.RESTAURANT, Intent.BOOKING, capabilities)
        assert decision.agent_type == AgentType.GENERAL
        assert decision.unavailable_capabilities == ("reservations",)

    def test_partial_action_tools_keep_agent(self, router):
        decision = router.route(Vertical.RESTAURANT, Intent.ORDER, ["menu_info"])
        assert decision.agent_type == AgentType.ORDERING
        assert decision.allowed_tools == ("get_menu",)
        assert decision.unavailable_capabilities == ()


class TestGatingSoundness:
    @pytest.mark.parametrize("vertical,capabilities", [
        (Vertical.RESTAURANT, RESTAURANT_CAPABILITIES),
        (Vertical.DENTAL, DENTAL_CAPABILITIES),
    ])
    def test_no_tool_without_its_capabilities(self, router, registry, vertical, capabilities):
        for subset in _subsets(capabilities):
            enabled = resolve_capabilities(subset)
            for intent in Intent:
                decision = router.route(vertical, intent, subset)
                for name in decision.allowed_tools:
                    assert registry.get(name).required_capabilities <= enabled, (vertical, intent, subset, name)

    def test_deterministic(self, router):
        first = router.route(Vertical.DENTAL, Intent.BOOKING, DENTAL_CAPABILITIES)
        second = router.route(Vertical.DENTAL, Intent.BOOKING, list(reversed(DENTAL_CAPABILITIES)))
        assert first == second

    def test_no_capabilities_no_tools(self, router):
        for intent in Intent:
            assert router.route(Vertical.RESTAURANT, intent, []).allowed_tools == ()
