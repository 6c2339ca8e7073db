"""
Live tracking session for one booking.

Two sources feed the view:
    push  - ``expert-location-update``, ``expert-arrived`` and
            ``tracking-started`` on the shared realtime channel
    pull  - tracking history and booking snapshots over REST

The displayed location is whichever of the last pushed and the last pulled
sample has the later timestamp, so a slow pull never overwrites a newer
push. History is keyed by timestamp and kept in time order.

Display status follows the booking:
    pending     -> idle
    accepted    -> en_route, or arrived once ``expert-arrived`` is pushed
    in_progress -> working (only ever learned from a booking refetch)

Any other status ends the session and detaches its listeners.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from servicehub.client.api import ApiClient
from servicehub.client.notifications import LoggingNotifier, Notifier
from servicehub.config import TrackingConfig, settings
from servicehub.errors import ServiceHubError
from servicehub.realtime.channel import (
    EXPERT_ARRIVED,
    EXPERT_LOCATION_UPDATE,
    TRACKING_STARTED,
    RealtimeChannel,
)
from servicehub.schemas.booking_schema import Booking, BookingStatus, ChatMessage
from servicehub.schemas.tracking_schema import (
    BookingEvent,
    LocationUpdateEvent,
    TrackingSample,
    TrackingStatus,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ViewListener = Callable[["TrackingView"], Union[None, Awaitable[None]]]

# Statuses a session keeps running through.
_OPEN_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.ACCEPTED,
    BookingStatus.IN_PROGRESS,
})


@dataclass(frozen=True)
class TrackingView:
    """Snapshot of everything the tracking screen shows."""
    booking_id: str
    booking_status: Optional[BookingStatus] = None
    display_status: TrackingStatus = TrackingStatus.IDLE
    current_location: Optional[TrackingSample] = None
    eta: Optional[str] = None
    history: tuple[TrackingSample, ...] = ()
    messages: tuple[ChatMessage, ...] = ()
    ended: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _later(a: Optional[TrackingSample], b: Optional[TrackingSample]) -> Optional[TrackingSample]:
    if a is None:
        return b
    if b is None:
        return a
    return b if b.timestamp > a.timestamp else a


class TrackingSession:
    """Merges pushed and pulled tracking data into one ``TrackingView``."""

    def __init__(
        self,
        booking_id: str,
        api: ApiClient,
        channel: RealtimeChannel,
        notifier: Optional[Notifier] = None,
        config: Optional[TrackingConfig] = None,
        clock: Optional[Clock] = None,
        on_update: Optional[ViewListener] = None,
        on_end: Optional[Callable[["TrackingSession"], None]] = None,
    ) -> None:
        self.booking_id = booking_id
        self._api = api
        self._channel = channel
        self._notifier = notifier or api.notifier or LoggingNotifier()
        self._config = config or settings.tracking
        self._clock = clock or _utcnow
        self.on_update = on_update
        self.on_end = on_end

        self._active = False
        self._ended = False
        self._booking_status: Optional[BookingStatus] = None
        self._arrived = False
        self._last_pushed: Optional[TrackingSample] = None
        self._last_pulled: Optional[TrackingSample] = None
        self._history: dict[datetime, TrackingSample] = {}
        self._eta: Optional[str] = None
        self._eta_as_of: Optional[datetime] = None
        self._messages: list[ChatMessage] = []
        self._last_push_at: Optional[datetime] = None
        self._subscriptions = [
            (EXPERT_LOCATION_UPDATE, self._on_location_update),
            (EXPERT_ARRIVED, self._on_expert_arrived),
            (TRACKING_STARTED, self._on_tracking_started),
        ]

    # ------------------------------------------------------------------ #
    # View
    # ------------------------------------------------------------------ #

    @property
    def active(self) -> bool:
        return self._active

    @property
    def view(self) -> TrackingView:
        return TrackingView(
            booking_id=self.booking_id,
            booking_status=self._booking_status,
            display_status=self._display_status(),
            current_location=_later(self._last_pushed, self._last_pulled),
            eta=self._eta,
            history=tuple(self._history[ts] for ts in sorted(self._history)),
            messages=tuple(self._messages),
            ended=self._ended,
        )

    def _display_status(self) -> TrackingStatus:
        if self._booking_status == BookingStatus.IN_PROGRESS:
            return TrackingStatus.WORKING
        if self._booking_status == BookingStatus.ACCEPTED:
            return TrackingStatus.ARRIVED if self._arrived else TrackingStatus.EN_ROUTE
        if self._booking_status is None and self._arrived:
            return TrackingStatus.ARRIVED
        return TrackingStatus.IDLE

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> TrackingView:
        """Subscribe to the channel, then populate from the backend."""
        if self._active:
            return self.view
        if self._ended:
            raise ServiceHubError(f"Tracking for booking {self.booking_id} has ended")

        for event, handler in self._subscriptions:
            self._channel.subscribe(event, handler)
        self._active = True
        self._last_push_at = self._clock()
        logger.info("Tracking started for booking %s", self.booking_id)

        try:
            await self.refresh_booking()
            if self._active:
                await self.refresh_history()
        except Exception:
            self.stop()
            raise
        return self.view

    def stop(self) -> None:
        """Detach listeners. Responses still in flight are ignored when they land."""
        if not self._active:
            return
        for event, handler in self._subscriptions:
            self._channel.unsubscribe(event, handler)
        self._active = False
        logger.info("Tracking stopped for booking %s", self.booking_id)

    def _end(self) -> None:
        self._ended = True
        self.stop()
        if self.on_end is not None:
            self.on_end(self)

    # ------------------------------------------------------------------ #
    # Pull
    # ------------------------------------------------------------------ #

    async def refresh_history(self) -> TrackingView:
        tracking = await self._api.tracking.history(self.booking_id)
        if not self._active:
            logger.debug("Discarding history for stopped session %s", self.booking_id)
            return self.view

        latest = tracking.latest
        for sample in tracking.history:
            self._history[sample.timestamp] = sample
        self._last_pulled = _later(self._last_pulled, latest)
        self._take_eta(tracking.estimated_arrival, latest.timestamp if latest else None)
        await self._publish()
        return self.view

    async def refresh_booking(self) -> TrackingView:
        booking = await self._api.bookings.get(self.booking_id)
        if not self._active:
            logger.debug("Discarding booking for stopped session %s", self.booking_id)
            return self.view
        self._apply_booking(booking)
        await self._publish()
        return self.view

    def _apply_booking(self, booking: Booking) -> None:
        previous = self._booking_status
        self._booking_status = booking.status
        self._messages = list(booking.communication.chat_messages)
        if previous != booking.status:
            logger.info(
                "Booking %s status: %s -> %s",
                self.booking_id, previous.value if previous else None, booking.status.value,
            )
        if booking.status not in _OPEN_STATUSES:
            self._end()

    async def reconcile_if_idle(self) -> bool:
        """Pull history when no push has arrived within the idle tolerance."""
        if not self._active:
            return False
        now = self._clock()
        since = self._last_push_at or now
        if (now - since).total_seconds() < self._config.idle_tolerance_sec:
            return False
        logger.debug("No push for booking %s since %s, pulling history", self.booking_id, since)
        await self.refresh_history()
        self._last_push_at = now
        return True

    async def run_reconciliation(self) -> None:
        """Poll until the session stops. Errors are already notified by the API client."""
        while self._active:
            await asyncio.sleep(self._config.poll_interval_sec)
            try:
                await self.reconcile_if_idle()
            except ServiceHubError as exc:
                logger.warning("Reconciliation for %s failed: %s", self.booking_id, exc)

    # ------------------------------------------------------------------ #
    # Push
    # ------------------------------------------------------------------ #

    def _accepts(self, data: Any, model: type[BookingEvent]) -> Optional[BookingEvent]:
        if not self._active:
            return None
        try:
            event = model.model_validate(data)
        except ValidationError as exc:
            logger.warning("Malformed push for booking %s: %s", self.booking_id, exc)
            return None
        if event.booking_id != self.booking_id:
            return None
        return event

    async def _on_location_update(self, data: Any) -> None:
        event = self._accepts(data, LocationUpdateEvent)
        if event is None:
            return
        now = self._clock()
        try:
            sample = event.to_sample(now)
        except ValidationError as exc:
            logger.warning("Unusable location for booking %s: %s", self.booking_id, exc)
            return
        self._last_push_at = now
        self._last_pushed = _later(self._last_pushed, sample)
        self._history[sample.timestamp] = sample
        self._take_eta(event.estimated_arrival, sample.timestamp)
        await self._publish()

    async def _on_expert_arrived(self, data: Any) -> None:
        if self._accepts(data, BookingEvent) is None:
            return
        self._arrived = True
        self._last_push_at = self._clock()
        await self._publish()
        await self.refresh_booking()

    async def _on_tracking_started(self, data: Any) -> None:
        if self._accepts(data, BookingEvent) is None:
            return
        self._last_push_at = self._clock()
        await self.refresh_history()

    def _take_eta(self, eta: Optional[str], as_of: Optional[datetime]) -> None:
        """Keep the ETA that belongs to the newest sample seen so far."""
        if not eta:
            return
        if self._eta_as_of is not None and (as_of is None or as_of < self._eta_as_of):
            logger.debug("Ignoring stale ETA %r for booking %s", eta, self.booking_id)
            return
        self._eta = eta
        if as_of is not None:
            self._eta_as_of = as_of

    async def _publish(self) -> None:
        if self.on_update is None:
            return
        result = self.on_update(self.view)
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------ #
    # Booking actions
    # ------------------------------------------------------------------ #

    async def send_message(self, text: str) -> bool:
        """Append a chat message to the booking and refetch it."""
        if not text.strip():
            return False
        await self._api.bookings.add_message(self.booking_id, text.strip(), type="text")
        await self.refresh_booking()
        return True

    async def cancel(self, reason: Optional[str] = None) -> TrackingView:
        await self._api.bookings.cancel(self.booking_id, reason)
        self._notifier.success("Booking cancelled")
        await self.refresh_booking()
        return self.view
