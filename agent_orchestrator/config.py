"""
Centralized configuration with environment variable overrides.

Thresholds, deadlines, and model settings for every orchestration layer
are configurable here. Tenant-specific data (vertical, capabilities,
personality) is not configuration: it comes from the tenant
configuration collaborator at runtime.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _csv(env_var: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(env_var, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class SecurityConfig:
    """Inbound event validation settings."""

    allowed_sources: tuple[str, ...] = _csv(
        "SECURITY_ALLOWED_SOURCES", "127.0.0.0/8,10.0.0.0/8,172.16.0.0/12,192.168.0.0/16,::1/128"
    )
    replay_window_sec: float = _safe_float("SECURITY_REPLAY_WINDOW_SEC", "300")
    clock_skew_sec: float = _safe_float("SECURITY_CLOCK_SKEW_SEC", "30")
    rate_limit_requests: int = _safe_int("SECURITY_RATE_LIMIT_REQUESTS", "100")
    rate_limit_window_sec: float = _safe_float("SECURITY_RATE_LIMIT_WINDOW_SEC", "60")
    max_body_bytes: int = _safe_int("SECURITY_MAX_BODY_BYTES", "1048576")
    secret_env_prefix: str = os.getenv("SECURITY_SECRET_ENV_PREFIX", "TENANT_SECRET_")


@dataclass(frozen=True)
class BreakerConfig:
    """Circuit breaker thresholds for the model backend."""

    failure_threshold: int = _safe_int("BREAKER_FAILURE_THRESHOLD", "5")
    cooldown_sec: float = _safe_float("BREAKER_COOLDOWN_SEC", "30")
    call_timeout_sec: float = _safe_float("BREAKER_CALL_TIMEOUT_SEC", "8.0")
    state_file: str = os.getenv("BREAKER_STATE_FILE", "")


@dataclass(frozen=True)
class AgentLoopConfig:
    """Bounds for the per-turn reasoning loop."""

    max_iterations: int = _safe_int("AGENT_MAX_ITERATIONS", "5")
    max_tool_failures: int = _safe_int("AGENT_MAX_TOOL_FAILURES", "3")
    history_window: int = _safe_int("AGENT_HISTORY_WINDOW", "10")
    chat_deadline_sec: float = _safe_float("CHAT_TURN_DEADLINE_SEC", "8.0")
    whatsapp_deadline_sec: float = _safe_float("WHATSAPP_TURN_DEADLINE_SEC", "10.0")
    voice_deadline_sec: float = _safe_float("VOICE_TURN_DEADLINE_SEC", "3.0")
    default_tool_timeout_sec: float = _safe_float("TOOL_DEFAULT_TIMEOUT_SEC", "10.0")


@dataclass(frozen=True)
class RetrievalConfig:
    """Semantic knowledge search defaults."""

    default_k: int = _safe_int("RETRIEVAL_DEFAULT_K", "4")
    max_k: int = _safe_int("RETRIEVAL_MAX_K", "10")
    threshold: float = _safe_float("RETRIEVAL_THRESHOLD", "0.7")
    embedding_model: str = os.getenv(
        "EMBEDDING_MODEL", "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    )
    database_url: str = os.getenv("KNOWLEDGE_DATABASE_URL", "")


@dataclass(frozen=True)
class PromptConfig:
    """Prompt compilation and cache settings."""

    cache_ttl_sec: float = _safe_float("PROMPT_CACHE_TTL_SEC", "3600")
    max_critical_instructions: int = _safe_int("PROMPT_MAX_CRITICAL_INSTRUCTIONS", "5")
    max_knowledge_highlights: int = _safe_int("PROMPT_MAX_KNOWLEDGE_HIGHLIGHTS", "8")
    template_version: str = os.getenv("PROMPT_TEMPLATE_VERSION", "1")


@dataclass(frozen=True)
class ModelConfig:
    """LLM backend settings."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.3")
    request_timeout_sec: float = _safe_float("LLM_REQUEST_TIMEOUT_SEC", "20.0")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    security: SecurityConfig = field(default_factory=SecurityConfig)
    breaker: BreakerConfig = field(default_factory=BreakerConfig)
    agent_loop: AgentLoopConfig = field(default_factory=AgentLoopConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    prompts: PromptConfig = field(default_factory=PromptConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "agent-orchestrator")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.security.replay_window_sec <= 0:
        raise ValueError(
            f"SECURITY_REPLAY_WINDOW_SEC must be > 0, got {config.security.replay_window_sec}"
        )
    if config.security.rate_limit_requests < 1:
        raise ValueError(
            f"SECURITY_RATE_LIMIT_REQUESTS must be >= 1, got {config.security.rate_limit_requests}"
        )
    if config.security.rate_limit_window_sec <= 0:
        raise ValueError(
            "SECURITY_RATE_LIMIT_WINDOW_SEC must be > 0, "
            f"got {config.security.rate_limit_window_sec}"
        )
    if config.breaker.failure_threshold < 1:
        raise ValueError(
            f"BREAKER_FAILURE_THRESHOLD must be >= 1, got {config.breaker.failure_threshold}"
        )
    if config.breaker.cooldown_sec <= 0:
        raise ValueError(
            f"BREAKER_COOLDOWN_SEC must be > 0, got {config.breaker.cooldown_sec}"
        )
    if config.breaker.call_timeout_sec <= 0:
        raise ValueError(
            f"BREAKER_CALL_TIMEOUT_SEC must be > 0, got {config.breaker.call_timeout_sec}"
        )
    if config.agent_loop.max_iterations < 1:
        raise ValueError(
            f"AGENT_MAX_ITERATIONS must be >= 1, got {config.agent_loop.max_iterations}"
        )
    if config.agent_loop.max_tool_failures < 1:
        raise ValueError(
            f"AGENT_MAX_TOOL_FAILURES must be >= 1, got {config.agent_loop.max_tool_failures}"
        )

    for deadline_name, deadline in [
        ("CHAT_TURN_DEADLINE_SEC", config.agent_loop.chat_deadline_sec),
        ("WHATSAPP_TURN_DEADLINE_SEC", config.agent_loop.whatsapp_deadline_sec),
        ("VOICE_TURN_DEADLINE_SEC", config.agent_loop.voice_deadline_sec),
    ]:
        if deadline <= 0:
            raise ValueError(f"{deadline_name} must be > 0, got {deadline}")

    if not 0.0 <= config.retrieval.threshold <= 1.0:
        raise ValueError(
            f"RETRIEVAL_THRESHOLD must be between 0.0 and 1.0, got {config.retrieval.threshold}"
        )
    if not 1 <= config.retrieval.default_k <= config.retrieval.max_k:
        raise ValueError(
            "RETRIEVAL_DEFAULT_K must be between 1 and RETRIEVAL_MAX_K, "
            f"got {config.retrieval.default_k}"
        )
    if config.prompts.cache_ttl_sec <= 0:
        raise ValueError(
            f"PROMPT_CACHE_TTL_SEC must be > 0, got {config.prompts.cache_ttl_sec}"
        )
    if config.prompts.max_critical_instructions < 0:
        raise ValueError(
            "PROMPT_MAX_CRITICAL_INSTRUCTIONS must be >= 0, "
            f"got {config.prompts.max_critical_instructions}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
