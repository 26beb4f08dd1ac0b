"""
Persistence collaborator interfaces.

The dispatch core never owns storage; it reads and writes plain camelCase
dicts through these interfaces and validates the echoed records itself.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


Record = dict[str, Any]


class EntityAPI(ABC):
    """CRUD access to one entity collection (routes, pickups, ...)."""

    name: str = "entity"

    @abstractmethod
    async def get_all(self, filters: Optional[dict[str, Any]] = None) -> list[Record]:
        """Return records matching *filters*.

        Scalar filter values match exactly; list values match when the
        record's field is one of the listed values.
        """

    @abstractmethod
    async def get_by_id(self, entity_id: str) -> Optional[Record]:
        """Return one record, or None if it does not exist."""

    @abstractmethod
    async def create(self, payload: Record) -> Record:
        """Create a record and return it as stored."""

    @abstractmethod
    async def update(self, entity_id: str, partial: Record) -> Record:
        """Merge *partial* into a record and return it as stored."""

    @abstractmethod
    async def delete(self, entity_id: str) -> bool:
        """Remove a record."""


class CaseStatusAPI(ABC):
    """Write access to lab cases, used for shipped/delivered transitions."""

    @abstractmethod
    async def update(self, case_id: str, partial: Record) -> Record:
        """Merge *partial* into a case and return it as stored."""


@dataclass
class LogisticsAPI:
    """Bundle of the collaborators the dispatch core talks to."""
    routes: EntityAPI
    pickups: EntityAPI
    vehicles: EntityAPI
    providers: EntityAPI
    cases: CaseStatusAPI
