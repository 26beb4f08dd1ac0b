"""
Delivery provider model.

Providers are either the lab's own fleet (IN_HOUSE) or a courier
integration (THIRD_PARTY).
"""
from typing import Optional

from pydantic import Field

from labroute.models.base import DomainModel, TimestampMixin
from labroute.models.enums import ProviderStatus, ProviderType


class ProviderCapabilities(DomainModel):
    """What a provider can carry."""
    max_weight_kg: float = 0.0
    temperature_control: bool = False
    fragile_handling: bool = False


class ProviderIntegration(DomainModel):
    """Integration settings. Lower fallback priority = preferred for rush jobs."""
    fallback_priority: int = 0


class Provider(TimestampMixin):
    """In-house or third-party delivery provider."""
    id: str
    name: Optional[str] = None
    type: ProviderType
    status: ProviderStatus = ProviderStatus.ACTIVE
    capabilities: ProviderCapabilities = Field(default_factory=ProviderCapabilities)
    integration: ProviderIntegration = Field(default_factory=ProviderIntegration)
