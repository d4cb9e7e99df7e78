"""Inbound event contract: raw signed webhook plus its normalized body."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Channel(str, Enum):
    VOICE = "voice"
    WHATSAPP = "whatsapp"
    CHAT = "chat"


SIGNATURE_HEADER = "signature"
TIMESTAMP_HEADER = "timestamp"
SOURCE_ID_HEADER = "source-id"


@dataclass(frozen=True)
class RawEvent:
    """Transport-level event as received, before any validation.

    ``body`` is the exact byte payload the signature was computed over.
    Header names are matched case-insensitively.
    """

    headers: dict[str, str]
    body: bytes
    remote_addr: str

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


class InboundEvent(BaseModel):
    """Normalized event body carried by every channel."""

    channel: Channel
    tenant_id: str = Field(min_length=1)
    contact_id: str = Field(min_length=1)
    content: str
    idempotency_key: str = Field(min_length=1)
    occurred_at: Optional[datetime] = None
    locale: Optional[str] = None

    @field_validator("content")
    @classmethod
    def _strip_content(cls, value: str) -> str:
        return value.strip()

    @property
    def conversation_key(self) -> str:
        """Stable identity of the tenant+contact+channel conversation."""
        return f"{self.tenant_id}:{self.channel.value}:{self.contact_id}"
