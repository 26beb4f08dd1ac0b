"""
Dispatch service container.

Builds the collaborators once per process (persistence backend, event bus,
cache, deduplicator, store, lifecycle manager, realtime client) and hands
them out by reference.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from labroute.core.config import Settings, get_settings
from labroute.persistence import LogisticsAPI, create_http_api, create_http_client, create_memory_api
from labroute.services.cache import MemoryCache, RequestDeduplicator
from labroute.services.events import EventBus
from labroute.services.lifecycle import StopLifecycleManager
from labroute.services.realtime import LogisticsWebSocketClient
from labroute.services.store import RouteStore

logger = logging.getLogger(__name__)


@dataclass
class DispatchService:
    """Everything an API request or worker needs to drive dispatch."""
    config: Settings
    api: LogisticsAPI
    bus: EventBus
    cache: MemoryCache
    deduplicator: RequestDeduplicator
    store: RouteStore
    lifecycle: StopLifecycleManager
    realtime: LogisticsWebSocketClient
    http_client: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        """Release network resources."""
        await self.realtime.disconnect()
        if self.http_client is not None:
            await self.http_client.aclose()


def create_dispatch_service(
    config: Optional[Settings] = None,
    api: Optional[LogisticsAPI] = None,
) -> DispatchService:
    """
    Wire a DispatchService.

    Without an explicit *api*, the REST backend is used when
    ``logistics_api_url`` is set and the in-memory backend otherwise.
    """
    config = config or get_settings()
    http_client = None

    if api is None:
        if config.logistics_api_url:
            http_client = create_http_client(
                config.logistics_api_url,
                token=config.api_token,
                timeout=config.api_timeout_seconds,
            )
            api = create_http_api(http_client)
            logger.info(f"Using logistics API at {config.logistics_api_url}")
        else:
            api = create_memory_api()
            logger.info("Using in-memory logistics backend")

    bus = EventBus()
    cache = MemoryCache(
        default_ttl_ms=config.cache_default_ttl_ms,
        max_size=config.cache_max_size,
    )
    deduplicator = RequestDeduplicator()
    store = RouteStore(api, bus=bus, cache=cache, deduplicator=deduplicator, config=config)

    return DispatchService(
        config=config,
        api=api,
        bus=bus,
        cache=cache,
        deduplicator=deduplicator,
        store=store,
        lifecycle=StopLifecycleManager(store),
        realtime=LogisticsWebSocketClient(
            url=config.ws_url,
            token_provider=lambda: config.api_token,
            reconnect_delay_ms=config.ws_reconnect_delay_ms,
            max_reconnect_attempts=config.ws_max_reconnect_attempts,
            heartbeat_interval_ms=config.ws_heartbeat_interval_ms,
        ),
        http_client=http_client,
    )
