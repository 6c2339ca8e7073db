"""
Authenticated REST client for the marketplace backend.

Every request carries the current bearer token. Failures are surfaced to
the customer once through the notifier and still propagated to the caller:

    401          -> credential cleared, ``on_auth_expired`` fired, AuthExpiredError
    other 4xx/5xx -> server message (or a generic one) notified, ApiError
    no response  -> network message notified, NetworkError

Calls are fire-once: nothing is retried, cached or deduplicated.

Usage:
    async with ApiClient(credentials) as api:
        booking = await api.bookings.get("64f1...")
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from servicehub.client.credentials import CredentialStore
from servicehub.client.notifications import LoggingNotifier, Notifier
from servicehub.client.resources import (
    BookingsApi,
    CommunityApi,
    EmergencyApi,
    ExpertsApi,
    PaymentsApi,
    TrackingApi,
)
from servicehub.config import settings
from servicehub.errors import ApiError, AuthExpiredError, NetworkError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An error occurred"
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection."

AuthExpiredHook = Callable[[], Union[None, Awaitable[None]]]


class ApiClient:
    """Stateless request wrapper plus one attribute per backend resource."""

    def __init__(
        self,
        credentials: CredentialStore,
        notifier: Optional[Notifier] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        on_auth_expired: Optional[AuthExpiredHook] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.credentials = credentials
        self.notifier = notifier or LoggingNotifier()
        self.on_auth_expired = on_auth_expired
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.api.base_url,
            timeout=timeout if timeout is not None else settings.api.http_timeout_sec,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

        self.bookings = BookingsApi(self)
        self.experts = ExpertsApi(self)
        self.payments = PaymentsApi(self)
        self.tracking = TrackingApi(self)
        self.emergency = EmergencyApi(self)
        self.community = CommunityApi(self)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self.request("PUT", path, json=json)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Issue one request and return the decoded JSON body."""
        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ""}
        headers = self.credentials.authorization_header()

        try:
            response = await self._http.request(
                method, path, params=params or None, json=json, headers=headers
            )
        except httpx.TransportError as exc:
            logger.warning("%s %s failed without a response: %s", method, path, exc)
            self.notifier.error(NETWORK_ERROR_MESSAGE)
            raise NetworkError(f"{method} {path}: {exc}") from exc

        payload = _decode(response)
        if response.status_code == 401:
            await self._handle_auth_expired(method, path)
            raise AuthExpiredError(401, _message(payload) or "Session expired", payload)
        if response.status_code >= 400:
            message = _message(payload) or GENERIC_ERROR_MESSAGE
            logger.warning("%s %s -> %d: %s", method, path, response.status_code, message)
            self.notifier.error(message)
            raise ApiError(response.status_code, message, payload)

        logger.debug("%s %s -> %d", method, path, response.status_code)
        return payload

    async def _handle_auth_expired(self, method: str, path: str) -> None:
        logger.warning("%s %s -> 401, clearing credential", method, path)
        self.credentials.clear()
        if self.on_auth_expired is not None:
            result = self.on_auth_expired()
            if inspect.isawaitable(result):
                await result


def _decode(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"data": body}


def _message(payload: dict[str, Any]) -> Optional[str]:
    message = payload.get("message")
    return message if isinstance(message, str) and message.strip() else None
