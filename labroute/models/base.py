"""
Base model classes and mixins for the dispatch core.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    """
    Base class for domain entities.

    Attributes are snake_case in Python and camelCase on the wire, so
    payloads from the persistence API validate directly.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self, **kwargs: Any) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict in wire format."""
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class TimestampMixin(DomainModel):
    """Mixin for createdAt / updatedAt stamps set by the persistence API."""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Coordinates(DomainModel):
    """Geographic point in decimal degrees."""
    lat: float
    lng: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)
