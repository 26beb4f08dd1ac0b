"""
Dispatch services: state store, lifecycle, optimizer, selectors and transport.
"""

from labroute.services.cache import MemoryCache, RequestDeduplicator
from labroute.services.events import Event, EventBus, EventType
from labroute.services.lifecycle import StopLifecycleManager
from labroute.services.providers import select_provider
from labroute.services.reconciliation import CascadeKind, CascadeRetryQueue
from labroute.services.store import LoadSummary, LogisticsSnapshot, RouteStore
from labroute.services.dispatch import DispatchService, create_dispatch_service

__all__ = [
    "MemoryCache",
    "RequestDeduplicator",
    "Event",
    "EventBus",
    "EventType",
    "StopLifecycleManager",
    "select_provider",
    "CascadeKind",
    "CascadeRetryQueue",
    "LoadSummary",
    "LogisticsSnapshot",
    "RouteStore",
    "DispatchService",
    "create_dispatch_service",
]
