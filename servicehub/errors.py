"""Exception hierarchy shared by the client, channel, wizard and tracking layers."""

from typing import Any, Optional


class ServiceHubError(Exception):
    """Base class for all servicehub errors."""


class ApiError(ServiceHubError):
    """The backend answered with a 4xx/5xx status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}


class AuthExpiredError(ApiError):
    """The backend rejected the bearer credential (HTTP 401)."""


class NetworkError(ServiceHubError):
    """The request never produced an HTTP response."""


class GeolocationError(ServiceHubError):
    """A position could not be acquired within the allowed wait."""


class ChannelError(ServiceHubError):
    """The realtime channel was used outside its connect/disconnect lifecycle."""


def notified_by_client(exc: ServiceHubError) -> bool:
    """True when the API client already told the customer about ``exc``.

    HTTP errors and network failures are notified where they happen. An
    unsuccessful envelope or an unreadable body on a 2xx is not.
    """
    if isinstance(exc, NetworkError):
        return True
    return isinstance(exc, ApiError) and exc.status_code >= 400
