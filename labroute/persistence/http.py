"""
REST adapter for the logistics API.

Each entity maps to a collection resource:
    GET    /{resource}?field=value
    GET    /{resource}/{id}
    POST   /{resource}
    PATCH  /{resource}/{id}
    DELETE /{resource}/{id}
Cases are only ever patched: ``PATCH /cases/{id}``.
"""
import logging
from typing import Any, Optional

import httpx

from labroute.core.exceptions import PersistenceError
from labroute.persistence.base import CaseStatusAPI, EntityAPI, LogisticsAPI, Record

logger = logging.getLogger(__name__)


def _query_params(filters: Optional[dict[str, Any]]) -> list[tuple[str, str]]:
    """Flatten filters into query params; list values become repeated keys."""
    params: list[tuple[str, str]] = []
    for key, value in (filters or {}).items():
        values = value if isinstance(value, (list, tuple, set)) else [value]
        for item in values:
            if isinstance(item, bool):
                item = str(item).lower()
            params.append((key, str(item)))
    return params


class HttpEntityAPI(EntityAPI):
    """One REST collection behind a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient, resource: str, name: str):
        self._client = client
        self.resource = resource.strip("/")
        self.name = name

    async def get_all(self, filters: Optional[dict[str, Any]] = None) -> list[Record]:
        response = await self._request(
            "fetch", "GET", f"/{self.resource}", params=_query_params(filters)
        )
        data = response.json()
        # Some deployments wrap collections as {"items": [...]}
        if isinstance(data, dict):
            data = data.get("items", [])
        return data

    async def get_by_id(self, entity_id: str) -> Optional[Record]:
        response = await self._request(
            "fetch", "GET", f"/{self.resource}/{entity_id}", allow_404=True
        )
        if response.status_code == 404:
            return None
        return response.json()

    async def create(self, payload: Record) -> Record:
        response = await self._request("create", "POST", f"/{self.resource}", json=payload)
        return response.json()

    async def update(self, entity_id: str, partial: Record) -> Record:
        response = await self._request(
            "update", "PATCH", f"/{self.resource}/{entity_id}", json=partial
        )
        return response.json()

    async def delete(self, entity_id: str) -> bool:
        await self._request("delete", "DELETE", f"/{self.resource}/{entity_id}")
        return True

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        allow_404: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
            if allow_404 and response.status_code == 404:
                return response
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceError(
                operation, self.name, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise PersistenceError(operation, self.name, e) from e
        return response


class HttpCaseAPI(CaseStatusAPI):
    """Case status updates over REST."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def update(self, case_id: str, partial: Record) -> Record:
        try:
            response = await self._client.patch(f"/cases/{case_id}", json=partial)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceError(
                "update", "case", f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise PersistenceError("update", "case", e) from e
        return response.json()


def create_http_client(
    base_url: str,
    token: Optional[str] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Build the shared client with auth header and timeout."""
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers,
        timeout=timeout,
        transport=transport,
    )


def create_http_api(client: httpx.AsyncClient) -> LogisticsAPI:
    """Build the REST collaborator bundle over one client."""
    return LogisticsAPI(
        routes=HttpEntityAPI(client, "routes", "route"),
        pickups=HttpEntityAPI(client, "pickups", "pickup"),
        vehicles=HttpEntityAPI(client, "vehicles", "vehicle"),
        providers=HttpEntityAPI(client, "providers", "provider"),
        cases=HttpCaseAPI(client),
    )
