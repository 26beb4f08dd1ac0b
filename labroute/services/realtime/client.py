"""
Real-time logistics transport client.

Persistent websocket connection with:
- channel subscriptions that survive reconnects
- a PING heartbeat, reset by every inbound message
- linear reconnect backoff (base delay x attempt) up to a maximum attempt count
- local event channels for every inbound message type

The client never raises connection failures to callers. They surface on the
``error`` and ``disconnected`` channels and are retried internally.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import quote

import aiohttp

from labroute.core.config import get_settings
from labroute.core.exceptions import RealtimeConnectionError

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]
EventHandler = Callable[[Any], Any]


class ConnectionState(Enum):
    """WebSocket connection states."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


class ClientEvent(str, Enum):
    """Local channels emitted by the client."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    RECONNECTING = "reconnecting"
    MAX_RECONNECT_REACHED = "max_reconnect_reached"
    DRIVER_LOCATION = "driver_location"
    ROUTE_STATUS = "route_status"
    STOP_STATUS = "stop_status"
    PICKUP_ASSIGNED = "pickup_assigned"
    ETA_UPDATE = "eta_update"
    MESSAGE = "message"


# Server message type -> local channel
MESSAGE_ROUTES: dict[str, ClientEvent] = {
    "DRIVER_LOCATION_UPDATE": ClientEvent.DRIVER_LOCATION,
    "ROUTE_STATUS_CHANGED": ClientEvent.ROUTE_STATUS,
    "STOP_STATUS_CHANGED": ClientEvent.STOP_STATUS,
    "PICKUP_ASSIGNED": ClientEvent.PICKUP_ASSIGNED,
    "ETA_UPDATE": ClientEvent.ETA_UPDATE,
}


class LogisticsWebSocketClient:
    """
    Connection manager for the logistics websocket.

    Construct once and pass by reference; nothing here is module-global.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        reconnect_delay_ms: Optional[int] = None,
        max_reconnect_attempts: Optional[int] = None,
        heartbeat_interval_ms: Optional[int] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        config = get_settings()
        self.url = url or config.ws_url
        self.reconnect_delay_ms = (
            reconnect_delay_ms if reconnect_delay_ms is not None else config.ws_reconnect_delay_ms
        )
        self.max_reconnect_attempts = (
            max_reconnect_attempts
            if max_reconnect_attempts is not None
            else config.ws_max_reconnect_attempts
        )
        self.heartbeat_interval_ms = (
            heartbeat_interval_ms
            if heartbeat_interval_ms is not None
            else config.ws_heartbeat_interval_ms
        )
        self._token_provider = token_provider
        self._token: Optional[str] = None

        self._session = session
        self._owns_session = session is None
        self._ws: Any = None

        self._state = ConnectionState.DISCONNECTED
        self._closing = False
        # Bumped by disconnect() so an in-flight open knows it was abandoned
        self._epoch = 0
        self.reconnect_attempts = 0

        self._receive_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        # Insertion-ordered set of channels
        self._subscriptions: dict[str, None] = {}
        self._handlers: dict[str, list[EventHandler]] = {}

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._ws is not None

    @property
    def subscriptions(self) -> tuple[str, ...]:
        return tuple(self._subscriptions)

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self, token: Optional[str] = None) -> None:
        """
        Open the connection.

        An explicit connect resets the reconnect attempt counter, so it also
        recovers a client that gave up after the maximum attempts.
        """
        if self._state != ConnectionState.DISCONNECTED:
            logger.warning("WebSocket already connected or connecting")
            return

        if token is not None:
            self._token = token
        self._closing = False
        self.reconnect_attempts = 0
        self._cancel_reconnect()
        await self._connect()

    async def _connect(self) -> None:
        token = await self._resolve_token()
        if not token:
            logger.error("No auth token available, not connecting")
            self._emit(ClientEvent.ERROR, RealtimeConnectionError("No auth token available"))
            return

        epoch = self._epoch
        self._state = ConnectionState.CONNECTING
        try:
            ws = await self._open_connection(self._build_url(token))
        except Exception as e:
            if epoch != self._epoch:
                logger.debug(f"Abandoned connection attempt failed: {e}")
                return
            self._state = ConnectionState.DISCONNECTED
            logger.error(f"WebSocket connection failed: {e}")
            self._emit(ClientEvent.ERROR, RealtimeConnectionError(f"Connection failed: {e}"))
            self._schedule_reconnect()
            return

        # disconnect() was called while the socket was opening
        if epoch != self._epoch:
            logger.info("Disconnected while connecting, closing new socket")
            await self._close_socket(ws)
            return

        self._ws = ws
        await self._handle_open()
        self._receive_task = asyncio.create_task(self._receive_loop(ws))

    async def _open_connection(self, url: str) -> Any:
        """Open the underlying websocket."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return await self._session.ws_connect(url, autoclose=True)

    def _build_url(self, token: str) -> str:
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}token={quote(token, safe='')}"

    async def _resolve_token(self) -> Optional[str]:
        if self._token_provider is not None:
            token = self._token_provider()
            if asyncio.iscoroutine(token):
                token = await token
            if token:
                self._token = token
        return self._token

    async def _handle_open(self) -> None:
        self._state = ConnectionState.CONNECTED
        self.reconnect_attempts = 0
        logger.info(f"WebSocket connected: {self.url}")

        # Restore subscriptions before anything inbound is processed
        for channel in list(self._subscriptions):
            await self.send({"action": "SUBSCRIBE", "channel": channel})

        self._start_heartbeat()
        self._emit(ClientEvent.CONNECTED)

    async def disconnect(self) -> None:
        """Close the connection cleanly; no reconnect follows."""
        self._closing = True
        self._epoch += 1
        self._cancel_reconnect()
        self._stop_heartbeat()

        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        ws, self._ws = self._ws, None
        was_connected = self._state == ConnectionState.CONNECTED
        self._state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0

        if ws is not None:
            await self._close_socket(ws)

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

        if was_connected:
            logger.info("WebSocket disconnected")
            self._emit(ClientEvent.DISCONNECTED, {
                "code": NORMAL_CLOSURE,
                "reason": "Client disconnect",
            })

    async def _close_socket(self, ws: Any) -> None:
        try:
            await ws.close(code=NORMAL_CLOSURE, message=b"Client disconnect")
        except Exception as e:
            logger.warning(f"Error closing websocket: {e}")

    async def _handle_close(self, code: Optional[int], reason: str = "") -> None:
        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._stop_heartbeat()

        logger.info(f"WebSocket disconnected (code={code}, reason={reason!r})")
        self._emit(ClientEvent.DISCONNECTED, {"code": code, "reason": reason})

        if code != NORMAL_CLOSURE and not self._closing:
            self._schedule_reconnect()

    # --------------------------------------------------------
    # RECONNECTION
    # --------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return

        if self.reconnect_attempts >= self.max_reconnect_attempts:
            logger.error("Max reconnect attempts reached")
            self._emit(ClientEvent.MAX_RECONNECT_REACHED, {
                "attempts": self.reconnect_attempts,
            })
            return

        self.reconnect_attempts += 1
        delay_ms = self.reconnect_delay_ms * self.reconnect_attempts
        logger.info(
            f"Reconnecting in {delay_ms}ms "
            f"(attempt {self.reconnect_attempts}/{self.max_reconnect_attempts})"
        )
        self._emit(ClientEvent.RECONNECTING, {
            "attempt": self.reconnect_attempts,
            "delayMs": delay_ms,
        })
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms))

    async def _reconnect_after(self, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        self._reconnect_task = None
        if not self._closing:
            await self._connect()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # --------------------------------------------------------
    # MESSAGE HANDLING
    # --------------------------------------------------------

    async def _receive_loop(self, ws: Any) -> None:
        code: Optional[int] = None
        reason = ""
        try:
            while True:
                msg = await ws.receive()

                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_message(msg.data)
                elif msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                ):
                    code = ws.close_code
                    if code is None and isinstance(msg.data, int):
                        code = msg.data
                    reason = msg.extra if isinstance(msg.extra, str) else ""
                    break
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"WebSocket error: {msg.data}")
                    self._emit(ClientEvent.ERROR, RealtimeConnectionError(str(msg.data)))
                    code = ws.close_code
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in receive loop: {e}")
            self._emit(ClientEvent.ERROR, RealtimeConnectionError(str(e)))

        if self._receive_task is asyncio.current_task():
            self._receive_task = None
        await self._handle_close(code, reason)

    def _handle_message(self, raw: str) -> None:
        # Any inbound frame proves liveness, even one that fails to parse
        self._reset_heartbeat()

        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse WebSocket message: {e}")
            return

        if not isinstance(message, dict):
            logger.warning(f"Unexpected WebSocket payload: {message!r}")
            self._emit(ClientEvent.MESSAGE, message)
            return

        message_type = message.get("type")
        if message_type == "PONG":
            return

        channel = MESSAGE_ROUTES.get(message_type)
        if channel is None:
            logger.warning(f"Unknown message type: {message_type}")
            self._emit(ClientEvent.MESSAGE, message)
            return

        self._emit(channel, message.get("data"))

    # --------------------------------------------------------
    # HEARTBEAT
    # --------------------------------------------------------

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _reset_heartbeat(self) -> None:
        if self.is_connected:
            self._start_heartbeat()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval_ms / 1000)
            await self.send({"action": "PING"})

    # --------------------------------------------------------
    # SENDING
    # --------------------------------------------------------

    async def send(self, message: dict[str, Any]) -> bool:
        """Send a JSON message; returns False if it could not be sent."""
        if not self.is_connected:
            logger.warning(f"WebSocket not connected, message dropped: {message}")
            return False
        try:
            await self._ws.send_str(json.dumps(message))
        except Exception as e:
            logger.error(f"Failed to send WebSocket message: {e}")
            return False
        return True

    async def subscribe(self, channel: str) -> None:
        """Add *channel* to the subscription set (kept across reconnects)."""
        self._subscriptions[channel] = None
        if self.is_connected:
            await self.send({"action": "SUBSCRIBE", "channel": channel})

    async def unsubscribe(self, channel: str) -> None:
        self._subscriptions.pop(channel, None)
        if self.is_connected:
            await self.send({"action": "UNSUBSCRIBE", "channel": channel})

    async def update_location(self, data: dict[str, Any]) -> bool:
        return await self.send({"action": "UPDATE_LOCATION", "data": data})

    # --------------------------------------------------------
    # LOCAL EVENTS
    # --------------------------------------------------------

    def on(self, event: Union[ClientEvent, str], handler: EventHandler) -> Callable[[], None]:
        """Register *handler* on a local channel; returns an unsubscribe callable."""
        name = _event_name(event)
        self._handlers.setdefault(name, []).append(handler)
        return lambda: self.off(name, handler)

    def off(self, event: Union[ClientEvent, str], handler: EventHandler) -> None:
        handlers = self._handlers.get(_event_name(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def _emit(self, event: Union[ClientEvent, str], data: Any = None) -> None:
        name = _event_name(event)
        for handler in list(self._handlers.get(name, [])):
            try:
                result = handler(data)
                if asyncio.iscoroutine(result):
                    asyncio.ensure_future(result)
            except Exception:
                logger.exception(f"Error in {name} handler")


def _event_name(event: Union[ClientEvent, str]) -> str:
    return event.value if isinstance(event, ClientEvent) else event
