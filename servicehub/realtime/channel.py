"""
Realtime channel: one Socket.IO connection per authenticated identity.

The channel is created and destroyed only by the session context. Every
other component receives it by injection and uses just three primitives:
``subscribe``, ``unsubscribe`` and ``emit``. Several consumers may subscribe
to the same event; each push is fanned out to all of them in delivery order.

Reconnection is left to python-socketio's built-in retry loop. The channel
re-joins the identity's room on every (re)connect and keeps a ``connected``
flag for display. Pushes missed while disconnected are not replayed.

Usage:
    channel = RealtimeChannel()
    await channel.connect(identity, token)
    channel.subscribe("expert-arrived", on_arrived)
    await channel.emit("emergency-alert", {...})
    await channel.disconnect()
"""

import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional, Union

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from servicehub.config import RealtimeConfig, settings
from servicehub.errors import ChannelError
from servicehub.logging_context import get_session_logger
from servicehub.schemas.session_schema import Identity

logger = get_session_logger(__name__)

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]

JOIN_ROOM = "join-room"
EMERGENCY_ALERT = "emergency-alert"

EXPERT_LOCATION_UPDATE = "expert-location-update"
EXPERT_ARRIVED = "expert-arrived"
TRACKING_STARTED = "tracking-started"
EMERGENCY_NOTIFICATION = "emergency-notification"
INCOMING_VIDEO_CALL = "incoming-video-call"
VIDEO_CALL_ACCEPTED = "video-call-accepted"

INBOUND_EVENTS: tuple[str, ...] = (
    EXPERT_LOCATION_UPDATE,
    EXPERT_ARRIVED,
    TRACKING_STARTED,
    EMERGENCY_NOTIFICATION,
    INCOMING_VIDEO_CALL,
    VIDEO_CALL_ACCEPTED,
)


def _default_client_factory(config: RealtimeConfig) -> Callable[[], socketio.AsyncClient]:
    def factory() -> socketio.AsyncClient:
        return socketio.AsyncClient(
            reconnection=config.reconnection,
            reconnection_attempts=config.reconnection_attempts,
            reconnection_delay=config.reconnection_delay_sec,
            reconnection_delay_max=config.reconnection_delay_max_sec,
            logger=False,
        )

    return factory


class RealtimeChannel:
    """Shared bidirectional push connection for the logged-in user."""

    def __init__(
        self,
        server_url: Optional[str] = None,
        client_factory: Optional[Callable[[], Any]] = None,
        config: Optional[RealtimeConfig] = None,
    ) -> None:
        self._config = config or settings.realtime
        self._server_url = server_url or settings.api.server_url
        self._client_factory = client_factory or _default_client_factory(self._config)
        self._client: Optional[Any] = None
        self._identity: Optional[Identity] = None
        self._connected = False
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._registered_events: set[str] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_open(self) -> bool:
        """True between ``connect`` and ``disconnect``, even while the transport retries."""
        return self._client is not None

    # ------------------------------------------------------------------ #
    # Lifecycle (session context only)
    # ------------------------------------------------------------------ #

    async def connect(self, identity: Identity, token: str) -> None:
        """Open the connection, authenticating with the bearer token."""
        if self._client is not None:
            raise ChannelError(
                f"Channel already open for user {self._identity.user_id if self._identity else '?'}; "
                "disconnect before connecting again"
            )

        client = self._client_factory()
        self._client = client
        self._identity = identity
        self._registered_events.clear()

        client.on("connect", self._on_connect)
        client.on("disconnect", self._on_disconnect)
        client.on("connect_error", self._on_connect_error)
        for event in set(INBOUND_EVENTS) | set(self._handlers):
            self._register(event)

        try:
            await client.connect(
                self._server_url,
                auth={"token": token},
                wait_timeout=self._config.connect_timeout_sec,
            )
        except SocketConnectionError as exc:
            logger.warning("Realtime connection to %s failed: %s", self._server_url, exc)
            self._client = None
            self._identity = None
            self._connected = False
            raise ChannelError(f"Could not connect to {self._server_url}: {exc}") from exc

    async def disconnect(self) -> None:
        """Close the connection. Subscriptions are kept for the next connect."""
        client = self._client
        if client is None:
            return
        self._client = None
        self._identity = None
        self._connected = False
        await client.disconnect()
        logger.info("Realtime channel closed")

    # ------------------------------------------------------------------ #
    # Primitives
    # ------------------------------------------------------------------ #

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)
        if self._client is not None:
            self._register(event)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    async def emit(self, event: str, payload: Any) -> bool:
        """Send an event. Dropped (returns False) while not connected."""
        if self._client is None or not self._connected:
            logger.warning("Dropping '%s' emit: channel not connected", event)
            return False
        await self._client.emit(event, payload)
        logger.debug("Emitted '%s'", event)
        return True

    # ------------------------------------------------------------------ #
    # Transport callbacks
    # ------------------------------------------------------------------ #

    def _register(self, event: str) -> None:
        if event in self._registered_events or self._client is None:
            return

        async def dispatcher(data: Any = None) -> None:
            await self._dispatch(event, data)

        self._client.on(event, dispatcher)
        self._registered_events.add(event)

    async def _dispatch(self, event: str, data: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler for '%s' failed", event)

    async def _on_connect(self) -> None:
        self._connected = True
        logger.info("Connected to %s", self._server_url)
        if self._client is not None and self._identity is not None:
            await self._client.emit(JOIN_ROOM, self._identity.user_id)

    async def _on_disconnect(self, *args: Any) -> None:
        self._connected = False
        logger.info("Disconnected from %s", self._server_url)

    async def _on_connect_error(self, data: Any = None) -> None:
        self._connected = False
        logger.error("Connection error: %s", data)
