"""Realtime test fixtures -- in-process websocket doubles."""
import asyncio
import json

import aiohttp
import pytest

from labroute.services.realtime import LogisticsWebSocketClient


class FakeWebSocket:
    """Stands in for aiohttp.ClientWebSocketResponse."""

    def __init__(self):
        self.sent: list[dict] = []
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.close_code = None
        self.closed = False

    async def send_str(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def receive(self) -> aiohttp.WSMessage:
        return await self.inbox.get()

    async def close(self, code: int = 1000, message: bytes = b"") -> bool:
        self.closed = True
        self.close_code = code
        return True

    def push(self, message) -> None:
        raw = message if isinstance(message, str) else json.dumps(message)
        self.inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, raw, None))

    def drop(self, code: int, reason: str = "") -> None:
        """Simulate the server closing the connection."""
        self.close_code = code
        self.inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.CLOSE, code, reason))


class FakeClient(LogisticsWebSocketClient):
    """
    Client whose connections are FakeWebSockets.

    The first ``failures`` connects raise; with ``open_gate`` every open
    waits until the event is set.
    """

    def __init__(self, failures: int = 0, open_gate: asyncio.Event = None, **kwargs):
        kwargs.setdefault("url", "wss://realtime.test/ws")
        kwargs.setdefault("token_provider", lambda: "tok en")
        kwargs.setdefault("reconnect_delay_ms", 10)
        kwargs.setdefault("max_reconnect_attempts", 2)
        kwargs.setdefault("heartbeat_interval_ms", 60_000)
        super().__init__(**kwargs)
        self.failures = failures
        self.open_gate = open_gate
        self.urls: list[str] = []
        self.sockets: list[FakeWebSocket] = []

    async def _open_connection(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.failures:
            self.failures -= 1
            raise aiohttp.ClientConnectionError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


@pytest.fixture
async def make_client():
    clients = []

    def _make(**kwargs) -> FakeClient:
        client = FakeClient(**kwargs)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.disconnect()


@pytest.fixture
def next_event():
    """Future resolved with the data of the next emission on a client channel."""

    def _next(client: LogisticsWebSocketClient, event) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()

        def handler(data):
            if not future.done():
                future.set_result(data)

        client.on(event, handler)
        return future

    return _next
