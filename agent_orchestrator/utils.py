"""Shared utilities used across the orchestrator."""

import hashlib
import json
import unicodedata
from typing import Any


def fold_text(value: str) -> str:
    """Lowercase and strip diacritics so rules match "mañana" and "manana" alike.

    Examples:
        >>> fold_text("Quiero una CITA mañana")
        'quiero una cita manana'
    """
    decomposed = unicodedata.normalize("NFD", value.lower())
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def stable_hash(payload: Any) -> str:
    """SHA-256 over a canonical JSON rendering of ``payload``."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
