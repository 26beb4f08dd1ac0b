"""
Persistence collaborators: interfaces plus in-memory and REST backends.
"""

from labroute.persistence.base import CaseStatusAPI, EntityAPI, LogisticsAPI, Record
from labroute.persistence.memory import InMemoryCaseAPI, InMemoryEntity, create_memory_api
from labroute.persistence.http import (
    HttpCaseAPI,
    HttpEntityAPI,
    create_http_api,
    create_http_client,
)

__all__ = [
    "CaseStatusAPI",
    "EntityAPI",
    "LogisticsAPI",
    "Record",
    "InMemoryCaseAPI",
    "InMemoryEntity",
    "create_memory_api",
    "HttpCaseAPI",
    "HttpEntityAPI",
    "create_http_api",
    "create_http_client",
]
