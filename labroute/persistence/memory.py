"""
Session-local in-memory backend.

Used when no logistics API URL is configured, and by the test suite.
Records are stored as camelCase dicts and copied on the way in and out so
callers never share mutable state with the backend.
"""
import copy
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from labroute.core.exceptions import NotFoundError
from labroute.persistence.base import CaseStatusAPI, EntityAPI, LogisticsAPI, Record

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(record: Record, filters: dict[str, Any]) -> bool:
    for key, value in filters.items():
        if isinstance(value, (list, tuple, set)):
            if record.get(key) not in value:
                return False
        elif record.get(key) != value:
            return False
    return True


class InMemoryEntity(EntityAPI):
    """Dict-backed entity collection, newest record first."""

    def __init__(self, name: str, initial: Optional[Iterable[Record]] = None):
        self.name = name
        self._records: list[Record] = [copy.deepcopy(r) for r in initial or []]
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._records)

    async def get_all(self, filters: Optional[dict[str, Any]] = None) -> list[Record]:
        if not filters:
            return copy.deepcopy(self._records)
        return [copy.deepcopy(r) for r in self._records if _matches(r, filters)]

    async def get_by_id(self, entity_id: str) -> Optional[Record]:
        index = self._index(entity_id)
        if index == -1:
            return None
        return copy.deepcopy(self._records[index])

    async def create(self, payload: Record) -> Record:
        record = copy.deepcopy(payload)
        if not record.get("id"):
            record["id"] = self._next_id()
        record.setdefault("createdAt", _now_iso())

        self._records.insert(0, record)
        logger.debug("Created %s %s", self.name, record["id"])
        return copy.deepcopy(record)

    async def update(self, entity_id: str, partial: Record) -> Record:
        index = self._index(entity_id)
        if index == -1:
            raise NotFoundError(self.name, entity_id)

        record = {**self._records[index], **copy.deepcopy(partial)}
        record["id"] = entity_id
        record["updatedAt"] = _now_iso()
        self._records[index] = record
        return copy.deepcopy(record)

    async def delete(self, entity_id: str) -> bool:
        index = self._index(entity_id)
        if index == -1:
            raise NotFoundError(self.name, entity_id)
        del self._records[index]
        return True

    def _index(self, entity_id: str) -> int:
        for index, record in enumerate(self._records):
            if record.get("id") == entity_id:
                return index
        return -1

    def _next_id(self) -> str:
        while True:
            candidate = f"{self.name}-{next(self._ids)}"
            if self._index(candidate) == -1:
                return candidate


class InMemoryCaseAPI(CaseStatusAPI):
    """Case store keyed by case id."""

    def __init__(self, cases: Optional[Iterable[Record]] = None):
        self._cases: dict[str, Record] = {
            c["id"]: copy.deepcopy(c) for c in cases or []
        }

    def get(self, case_id: str) -> Optional[Record]:
        case = self._cases.get(case_id)
        return copy.deepcopy(case) if case is not None else None

    async def update(self, case_id: str, partial: Record) -> Record:
        if case_id not in self._cases:
            raise NotFoundError("case", case_id)
        case = {**self._cases[case_id], **copy.deepcopy(partial)}
        case["updatedAt"] = _now_iso()
        self._cases[case_id] = case
        return copy.deepcopy(case)


def create_memory_api(
    routes: Optional[Iterable[Record]] = None,
    pickups: Optional[Iterable[Record]] = None,
    vehicles: Optional[Iterable[Record]] = None,
    providers: Optional[Iterable[Record]] = None,
    cases: Optional[Iterable[Record]] = None,
) -> LogisticsAPI:
    """Build a fully in-memory collaborator bundle."""
    return LogisticsAPI(
        routes=InMemoryEntity("route", routes),
        pickups=InMemoryEntity("pickup", pickups),
        vehicles=InMemoryEntity("vehicle", vehicles),
        providers=InMemoryEntity("provider", providers),
        cases=InMemoryCaseAPI(cases),
    )
