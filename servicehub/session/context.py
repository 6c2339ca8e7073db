"""
Session context: the one owner of identity, credential and realtime channel.

Everything that needs the API client or the channel receives it from here.
One login holds exactly one channel connection; logging in again tears the
previous connection down first.

Usage:
    async with SessionContext() as session:
        await session.login(identity, token)
        wizard = session.new_booking_wizard()
        ...
        tracker = await session.track(booking.id)
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Optional

import httpx

from servicehub.client.api import ApiClient
from servicehub.client.credentials import CredentialStore
from servicehub.client.notifications import LoggingNotifier, Notifier
from servicehub.config import AppConfig, settings
from servicehub.emergency import EmergencyService
from servicehub.errors import ChannelError, ServiceHubError
from servicehub.geolocation import GeolocationProvider
from servicehub.logging_context import set_session_id
from servicehub.realtime.channel import (
    EMERGENCY_NOTIFICATION,
    EXPERT_ARRIVED,
    INCOMING_VIDEO_CALL,
    TRACKING_STARTED,
    VIDEO_CALL_ACCEPTED,
    RealtimeChannel,
)
from servicehub.schemas.booking_schema import Booking
from servicehub.schemas.session_schema import Identity
from servicehub.tracking.session import TrackingSession, ViewListener
from servicehub.wizard.booking_wizard import BookingWizard

logger = logging.getLogger(__name__)


class SessionContext:
    """Holds the logged-in identity and hands out its collaborators."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        notifier: Optional[Notifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client_factory: Optional[Callable[[], Any]] = None,
        geolocation: Optional[GeolocationProvider] = None,
        today: Optional[Callable[[], date]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or settings
        self.notifier = notifier or LoggingNotifier()
        self.geolocation = geolocation
        self._today = today
        self._clock = clock
        self._identity: Optional[Identity] = None
        self._tracking: dict[str, TrackingSession] = {}

        self.credentials = CredentialStore()
        self.api = ApiClient(
            self.credentials,
            notifier=self.notifier,
            base_url=self.config.api.base_url,
            timeout=self.config.api.http_timeout_sec,
            on_auth_expired=self._on_auth_expired,
            transport=transport,
        )
        self.channel = RealtimeChannel(
            server_url=self.config.api.server_url,
            client_factory=client_factory,
            config=self.config.realtime,
        )
        self.emergency = EmergencyService(
            self.api,
            self.channel,
            identity=lambda: self._identity,
            geolocation=geolocation,
            notifier=self.notifier,
        )
        self._install_global_handlers()

    async def __aenter__(self) -> "SessionContext":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None and self.credentials.token is not None

    @property
    def tracking_sessions(self) -> dict[str, TrackingSession]:
        return dict(self._tracking)

    # ------------------------------------------------------------------ #
    # Identity lifecycle
    # ------------------------------------------------------------------ #

    async def login(self, identity: Identity, token: str) -> Identity:
        """Store the credential and open the realtime channel for ``identity``.

        A channel failure does not fail the login: REST keeps working and
        tracking falls back to history polling.
        """
        if self._identity is not None:
            logger.info("Replacing session for %s", self._identity.user_id)
            await self.logout()

        self.credentials.set(token)
        self._identity = identity
        set_session_id(identity.user_id)
        logger.info("Logged in as %s", identity.user_id)

        try:
            await self.channel.connect(identity, token)
        except ChannelError as exc:
            logger.warning("Realtime channel unavailable: %s", exc)
        return identity

    async def logout(self) -> None:
        for session in self._tracking.values():
            session.stop()
        self._tracking.clear()
        await self.channel.disconnect()
        self.credentials.clear()
        if self._identity is not None:
            logger.info("Logged out %s", self._identity.user_id)
        self._identity = None
        set_session_id("ANONYMOUS")

    async def _on_auth_expired(self) -> None:
        logger.warning("Session expired, redirecting to %s", self.config.api.login_path)
        await self.logout()

    async def aclose(self) -> None:
        await self.logout()
        await self.api.aclose()

    # ------------------------------------------------------------------ #
    # Consumers
    # ------------------------------------------------------------------ #

    def new_booking_wizard(self) -> BookingWizard:
        """A fresh wizard whose successful submission starts live tracking."""
        self._require_login("Please login to book a service")
        return BookingWizard(
            self.api,
            notifier=self.notifier,
            config=self.config.wizard,
            today=self._today,
            on_submitted=self._track_submitted,
        )

    async def track(
        self, booking_id: str, on_update: Optional[ViewListener] = None
    ) -> TrackingSession:
        """Start (or restart) the tracking session for ``booking_id``."""
        self._require_login("Please login to track a booking")
        previous = self._tracking.pop(booking_id, None)
        if previous is not None:
            previous.stop()

        session = TrackingSession(
            booking_id,
            self.api,
            self.channel,
            notifier=self.notifier,
            config=self.config.tracking,
            clock=self._clock,
            on_update=on_update,
            on_end=self._forget_tracking,
        )
        self._tracking[booking_id] = session
        try:
            await session.start()
        except Exception:
            self._forget_tracking(session)
            raise
        return session

    def _forget_tracking(self, session: TrackingSession) -> None:
        if self._tracking.get(session.booking_id) is session:
            del self._tracking[session.booking_id]

    async def _track_submitted(self, booking: Booking) -> None:
        try:
            await self.track(booking.id)
        except ServiceHubError as exc:
            logger.warning("Could not start tracking for %s: %s", booking.id, exc)

    def _require_login(self, message: str) -> None:
        if not self.is_authenticated:
            raise ServiceHubError(message)

    # ------------------------------------------------------------------ #
    # Global notifications
    # ------------------------------------------------------------------ #

    def _install_global_handlers(self) -> None:
        self.channel.subscribe(EMERGENCY_NOTIFICATION, self._on_emergency_notification)
        self.channel.subscribe(INCOMING_VIDEO_CALL, self._on_incoming_video_call)
        self.channel.subscribe(VIDEO_CALL_ACCEPTED, self._on_video_call_accepted)
        self.channel.subscribe(TRACKING_STARTED, self._on_tracking_started)
        self.channel.subscribe(EXPERT_ARRIVED, self._on_expert_arrived)

    def _on_emergency_notification(self, data: Any) -> None:
        logger.info("Emergency notification: %s", data)
        self.notifier.error("Emergency alert received!")

    def _on_incoming_video_call(self, data: Any) -> None:
        data = data if isinstance(data, dict) else {}
        self.notifier.success(
            f"Incoming video call from {data.get('userName', 'your expert')}",
            action_label="Answer",
            action_target=f"/video-call/{data.get('bookingId', '')}",
        )

    def _on_video_call_accepted(self, data: Any) -> None:
        self.notifier.success("Video call accepted!")

    def _on_tracking_started(self, data: Any) -> None:
        self.notifier.success("Expert tracking started!")

    def _on_expert_arrived(self, data: Any) -> None:
        self.notifier.success("Expert has arrived!")
