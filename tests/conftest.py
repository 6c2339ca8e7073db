"""Shared test fixtures and helpers."""

import inspect
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

import httpx
import pytest
from socketio.exceptions import ConnectionError as SocketConnectionError

from servicehub.client.api import ApiClient
from servicehub.client.credentials import CredentialStore
from servicehub.client.notifications import CollectingNotifier
from servicehub.config import TrackingConfig, WizardConfig
from servicehub.realtime.channel import RealtimeChannel
from servicehub.schemas.session_schema import Identity

BASE_URL = "http://backend.test/api"
SERVER_URL = "http://backend.test"
TODAY = date(2025, 3, 10)


class FakeSocketClient:
    """In-memory object with the ``socketio.AsyncClient`` surface the channel uses."""

    def __init__(self, fail_connect: bool = False) -> None:
        self.handlers: dict[str, Callable[..., Any]] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.connect_calls: list[dict[str, Any]] = []
        self.disconnect_calls = 0
        self.fail_connect = fail_connect

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, auth: Optional[dict] = None, wait_timeout: float = 1) -> None:
        self.connect_calls.append({"url": url, "auth": auth, "wait_timeout": wait_timeout})
        if self.fail_connect:
            raise SocketConnectionError("Connection refused")
        await self.trigger("connect")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        await self.trigger("disconnect")

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    async def trigger(self, event: str, *args: Any) -> None:
        """Deliver a server event (or a lifecycle callback) to the registered handler."""
        handler = self.handlers.get(event)
        if handler is None:
            return
        result = handler(*args)
        if inspect.isawaitable(result):
            await result

    def emitted_events(self, event: str) -> list[Any]:
        return [data for name, data in self.emitted if name == event]


class FakeBackend:
    """Route table served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def on(
        self,
        method: str,
        path: str,
        json: Any = None,
        status: int = 200,
        handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, json=json)
        self.routes[(method, path)] = handler

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and _route_path(r) == path]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, _route_path(request)))
        if route is None:
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        return route(request)


def _route_path(request: httpx.Request) -> str:
    path = request.url.path
    return path[len("/api"):] if path.startswith("/api") else path


def make_expert(
    expert_id: str = "exp-1",
    name: str = "Ravi Kumar",
    category: str = "plumber",
    hourly_rate: Optional[float] = 450.0,
) -> dict[str, Any]:
    return {
        "_id": expert_id,
        "user": {"name": name, "phone": "+91-98100-00001"},
        "services": [{"category": category, "hourlyRate": hourly_rate, "experience": 6}],
        "rating": {"average": 4.7, "count": 52},
        "isOnline": True,
    }


def make_booking(
    booking_id: str = "bk-1",
    status: str = "pending",
    messages: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    return {
        "_id": booking_id,
        "status": status,
        "service": {"category": "plumber", "description": "Leaking tap", "urgency": "medium"},
        "location": {"address": "42 MG Road"},
        "scheduling": {"preferredDate": "2025-03-12T00:00:00.000Z", "flexible": True},
        "expert": "exp-1",
        "pricing": {"basePrice": 450, "materialsCost": 0, "discount": 0},
        "communication": {"chatMessages": messages or []},
    }


def make_sample(lat: float, lng: float, minute: int, status: str = "en_route") -> dict[str, Any]:
    stamp = datetime(2025, 3, 12, 10, minute, tzinfo=timezone.utc)
    return {"lat": lat, "lng": lng, "timestamp": stamp.isoformat(), "status": status}


@pytest.fixture
def today():
    return lambda: TODAY


@pytest.fixture
def notifier():
    return CollectingNotifier()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def credentials():
    return CredentialStore("test-token")


@pytest.fixture
def api(credentials, notifier, backend):
    return ApiClient(credentials, notifier=notifier, base_url=BASE_URL, transport=backend.transport)


@pytest.fixture
def identity():
    return Identity(_id="user-1", name="Test User", email="test@example.com")


@pytest.fixture
def socket_client():
    return FakeSocketClient()


@pytest.fixture
def channel(socket_client):
    return RealtimeChannel(server_url=SERVER_URL, client_factory=lambda: socket_client)


@pytest.fixture
def wizard_config():
    return WizardConfig(min_days_ahead=1, max_days_ahead=30, expert_page_size=10)


@pytest.fixture
def tracking_config():
    return TrackingConfig(idle_tolerance_sec=30.0, poll_interval_sec=10.0, geolocation_timeout_sec=0.2)
