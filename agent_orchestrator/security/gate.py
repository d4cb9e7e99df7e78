"""
Security gate: the only way an inbound event reaches stateful logic.

Checks, in order, stopping at the first failure:
  1. source address is inside an allowed network, source-id present
  2. body within size limit, parseable, names a tenant with a secret
  3. HMAC-SHA256 signature over ``"{timestamp}.{raw body}"``
  4. timestamp inside the replay window (with clock-skew tolerance)
  5. body matches the inbound event contract
  6. tenant still has request budget

A failed check changes nothing (the rate budget is spent only after all
other checks pass) and the caller only ever sees the generic ``rejected``
code; the specific reason goes to the log.
"""

import hashlib
import hmac
import ipaddress
import json
import logging
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError

from agent_orchestrator.config import SecurityConfig, settings
from agent_orchestrator.schemas.events import (
    SIGNATURE_HEADER,
    SOURCE_ID_HEADER,
    TIMESTAMP_HEADER,
    InboundEvent,
    RawEvent,
)
from agent_orchestrator.security.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

REJECTED = "rejected"

SecretResolver = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class GateDecision:
    admitted: bool
    event: Optional[InboundEvent] = None
    code: Optional[str] = None

    @classmethod
    def reject(cls) -> "GateDecision":
        return cls(False, None, REJECTED)


def sign_payload(secret: str, timestamp: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of ``"{timestamp}.{body}"`` with the tenant secret."""
    message = timestamp.encode("utf-8") + b"." + body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def parse_timestamp(value: str) -> Optional[float]:
    """Epoch seconds from seconds, milliseconds or an ISO-8601 string."""
    value = value.strip()
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return None
        return parsed.timestamp()
    return number / 1000.0 if number > 1e11 else number


class EnvSecretResolver:
    """Looks up ``{prefix}{TENANT_ID}`` in the environment (non-alphanumerics become ``_``)."""

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix

    def __call__(self, tenant_id: str) -> Optional[str]:
        name = self._prefix + re.sub(r"[^A-Za-z0-9]", "_", tenant_id).upper()
        return os.getenv(name) or None


class SecurityGate:
    """Validates raw inbound events before anything else sees them."""

    def __init__(
        self,
        secrets: Optional[SecretResolver] = None,
        config: Optional[SecurityConfig] = None,
        clock: Callable[[], float] = time.time,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ) -> None:
        self._config = config or settings.security
        self._secrets = secrets or EnvSecretResolver(self._config.secret_env_prefix)
        self._clock = clock
        self._limiter = rate_limiter or SlidingWindowRateLimiter(
            self._config.rate_limit_requests, self._config.rate_limit_window_sec
        )
        self._networks = []
        for cidr in self._config.allowed_sources:
            try:
                self._networks.append(ipaddress.ip_network(cidr, strict=False))
            except ValueError:
                logger.error("Ignoring invalid allowed source network '%s'", cidr)

    def admit(self, raw: RawEvent) -> GateDecision:
        if not self._source_allowed(raw.remote_addr):
            return self._reject("source not allowed", raw.remote_addr)
        if not (raw.header(SOURCE_ID_HEADER) or "").strip():
            return self._reject("missing source-id", raw.remote_addr)
        if len(raw.body) > self._config.max_body_bytes:
            return self._reject("body too large", raw.remote_addr)

        signature = (raw.header(SIGNATURE_HEADER) or "").strip()
        timestamp = (raw.header(TIMESTAMP_HEADER) or "").strip()
        if not signature or not timestamp:
            return self._reject("missing signature or timestamp", raw.remote_addr)

        try:
            data = json.loads(raw.body)
        except (ValueError, UnicodeDecodeError, RecursionError):
            return self._reject("body is not JSON", raw.remote_addr)
        tenant_id = data.get("tenant_id") if isinstance(data, dict) else None
        if not isinstance(tenant_id, str) or not tenant_id:
            return self._reject("body names no tenant", raw.remote_addr)

        secret = self._secrets(tenant_id)
        if not secret:
            return self._reject("no secret for tenant", raw.remote_addr)

        if signature.lower().startswith("sha256="):
            signature = signature[len("sha256="):]
        expected = sign_payload(secret, timestamp, raw.body)
        # compare_digest raises on non-ASCII str
        provided = signature.lower().encode("utf-8", "replace")
        if not hmac.compare_digest(expected.encode("ascii"), provided):
            return self._reject("signature mismatch", raw.remote_addr)

        sent_at = parse_timestamp(timestamp)
        if sent_at is None:
            return self._reject("unparseable timestamp", raw.remote_addr)
        age = self._clock() - sent_at
        if age > self._config.replay_window_sec or age < -self._config.clock_skew_sec:
            return self._reject(f"timestamp outside window (age {age:.0f}s)", raw.remote_addr)

        try:
            event = InboundEvent.model_validate(data)
        except ValidationError as exc:
            return self._reject(f"invalid event body ({exc.error_count()} error(s))", raw.remote_addr)

        if not self._limiter.allows(tenant_id):
            return self._reject("rate limit exceeded", raw.remote_addr)
        self._limiter.record(tenant_id)

        logger.debug("Admitted event %s for tenant %s", event.idempotency_key, tenant_id)
        return GateDecision(True, event)

    def _source_allowed(self, remote_addr: str) -> bool:
        try:
            address = ipaddress.ip_address(remote_addr)
        except ValueError:
            return False
        return any(address in network for network in self._networks)

    def _reject(self, reason: str, remote_addr: str) -> GateDecision:
        logger.warning("Rejected inbound event from %s: %s", remote_addr, reason)
        return GateDecision.reject()
