"""Persistence for per-tenant circuit breaker records."""

import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class BreakerRecord:
    """Durable breaker state for one tenant. Timestamps are epoch seconds."""

    state: BreakerState = BreakerState.CLOSED
    consecutive_failures: int = 0
    last_transition_at: float = 0.0
    opened_at: Optional[float] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "BreakerRecord":
        return cls(
            state=BreakerState(data.get("state", BreakerState.CLOSED.value)),
            consecutive_failures=int(data.get("consecutive_failures", 0)),
            last_transition_at=float(data.get("last_transition_at", 0.0)),
            opened_at=data.get("opened_at"),
        )


class BreakerStore(Protocol):
    def load(self, tenant_id: str) -> Optional[BreakerRecord]:
        ...

    def save(self, tenant_id: str, record: BreakerRecord) -> None:
        ...


class InMemoryBreakerStore:
    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    def load(self, tenant_id: str) -> Optional[BreakerRecord]:
        data = self._records.get(tenant_id)
        return BreakerRecord.from_dict(data) if data else None

    def save(self, tenant_id: str, record: BreakerRecord) -> None:
        self._records[tenant_id] = record.to_dict()


class JsonFileBreakerStore:
    """Keeps all tenants' records in one JSON file, rewritten atomically on save."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._records: dict[str, dict] = {}
        if self._path.exists():
            try:
                self._records = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.exception("Unreadable breaker state file %s, starting closed", self._path)
                self._records = {}

    def load(self, tenant_id: str) -> Optional[BreakerRecord]:
        data = self._records.get(tenant_id)
        if not data:
            return None
        try:
            return BreakerRecord.from_dict(data)
        except (ValueError, TypeError):
            logger.warning("Discarding malformed breaker record for tenant %s", tenant_id)
            return None

    def save(self, tenant_id: str, record: BreakerRecord) -> None:
        with self._lock:
            self._records[tenant_id] = record.to_dict()
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".breaker-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(self._records, fh, sort_keys=True)
                os.replace(tmp, self._path)
            except OSError:
                logger.exception("Failed to persist breaker state to %s", self._path)
                if os.path.exists(tmp):
                    os.unlink(tmp)
