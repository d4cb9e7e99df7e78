"""Tenant configuration as returned by the tenant configuration collaborator."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Vertical(str, Enum):
    RESTAURANT = "restaurant"
    DENTAL = "dental"
    GENERAL = "general"


class Personality(BaseModel):
    """How the assistant presents itself for a tenant."""

    assistant_name: str = "Alex"
    tone: str = "friendly"
    first_message: Optional[str] = None
    formality: str = "informal"


class TenantConfig(BaseModel):
    """Read-only snapshot of one tenant's service configuration.

    ``capabilities`` holds raw capability names as configured; unknown
    names are discarded when the router resolves them.
    """

    tenant_id: str = Field(min_length=1)
    business_name: str
    vertical: Vertical = Vertical.GENERAL
    locale: str = "en"
    capabilities: list[str] = Field(default_factory=list)
    personality: Personality = Field(default_factory=Personality)
    critical_instructions: list[str] = Field(default_factory=list)
    knowledge_version: str = "0"
    knowledge_highlights: list[str] = Field(default_factory=list)
    business_hours: dict[str, str] = Field(default_factory=dict)
    address: Optional[str] = None
    phone: Optional[str] = None
    timezone: str = "UTC"

    @field_validator("locale")
    @classmethod
    def _normalize_locale(cls, value: str) -> str:
        lang = value.strip().lower().split("-")[0].split("_")[0]
        return lang if lang in ("en", "es") else "en"
