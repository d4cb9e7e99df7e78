"""Turn-scoped logging context for tracing one inbound event across modules.

Provides a logger that attaches the tenant and a turn correlation ID to
every record, so a single turn can be followed from the security gate
through the agent loop to the formatted reply.

Usage:
    from agent_orchestrator.logging_context import get_turn_logger, set_turn_context

    set_turn_context("tenant-1", "turn-abc123")
    logger = get_turn_logger(__name__)
    logger.info("Routing")  # record.turn_id == "turn-abc123"
"""

import logging
from contextvars import ContextVar

_turn_id: ContextVar[str] = ContextVar("turn_id", default="NO_TURN")
_tenant_id: ContextVar[str] = ContextVar("tenant_id", default="-")


def set_turn_context(tenant_id: str, turn_id: str) -> None:
    """Set the tenant and correlation ID for the current async context."""
    _tenant_id.set(tenant_id)
    _turn_id.set(turn_id)


def get_turn_id() -> str:
    return _turn_id.get()


def get_tenant_id() -> str:
    return _tenant_id.get()


class TurnContextFilter(logging.Filter):
    """Injects turn_id and tenant_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.turn_id = _turn_id.get()  # type: ignore[attr-defined]
        record.tenant_id = _tenant_id.get()  # type: ignore[attr-defined]
        return True


def get_turn_logger(name: str) -> logging.Logger:
    """Return a logger with the TurnContextFilter attached.

    The filter adds ``turn_id`` and ``tenant_id`` to each record so
    formatters can include ``%(turn_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, TurnContextFilter) for f in logger.filters):
        logger.addFilter(TurnContextFilter())
    return logger
