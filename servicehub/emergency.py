"""
Emergency alerts.

Two routes reach the backend:
    send_sos() / send_alert()  -> ``POST /emergency/alert`` with the GPS fix
    quick_alert()              -> ``emergency-alert`` emitted on the channel

Every alert needs a logged-in identity and a position. Failures are
reported through the notifier and returned as False; nothing is retried.
"""

import logging
from typing import Callable, Optional, Union

from servicehub.client.api import ApiClient
from servicehub.client.notifications import LoggingNotifier, Notifier
from servicehub.errors import ServiceHubError, notified_by_client
from servicehub.geolocation import GeolocationProvider, locate
from servicehub.realtime.channel import EMERGENCY_ALERT, RealtimeChannel
from servicehub.schemas.misc_schema import EmergencyAlert, EmergencyType, GeoPosition
from servicehub.schemas.session_schema import Identity

logger = logging.getLogger(__name__)

SOS_DESCRIPTION = "URGENT SOS - Immediate assistance required!"
QUICK_ALERT_DESCRIPTION = "Emergency service requested"
LOGIN_REQUIRED_MESSAGE = "Please login to send emergency alert"


class EmergencyService:
    """Sends emergency alerts on behalf of the logged-in customer."""

    def __init__(
        self,
        api: ApiClient,
        channel: RealtimeChannel,
        identity: Callable[[], Optional[Identity]],
        geolocation: Optional[GeolocationProvider] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._api = api
        self._channel = channel
        self._identity = identity
        self._geolocation = geolocation
        self._notifier = notifier or api.notifier or LoggingNotifier()

    async def send_sos(self) -> bool:
        """One-tap SOS with the fixed urgent description."""
        return await self._post(
            EmergencyType.SOS,
            SOS_DESCRIPTION,
            success="SOS alert sent! Help is on the way.",
            failure="Failed to send SOS alert. Please try again.",
        )

    async def send_alert(
        self, type: Union[EmergencyType, str], description: str
    ) -> bool:
        """Described alert of the given type."""
        if self._identity() is None:
            self._notifier.error(LOGIN_REQUIRED_MESSAGE)
            return False
        if not description.strip():
            self._notifier.error("Please describe your emergency")
            return False
        return await self._post(
            EmergencyType(type),
            description.strip(),
            success="Emergency alert sent! Help is on the way.",
            failure="Failed to send emergency alert. Please try again.",
        )

    async def quick_alert(self) -> bool:
        """Broadcast a general alert on the realtime channel. Skipped without a fix."""
        if self._identity() is None:
            self._notifier.error(LOGIN_REQUIRED_MESSAGE)
            return False
        try:
            position = await locate(self._geolocation)
        except ServiceHubError as exc:
            logger.warning("Quick alert skipped, no position: %s", exc)
            return False
        return await self._channel.emit(EMERGENCY_ALERT, {
            "location": {"lat": position.latitude, "lng": position.longitude},
            "emergencyType": EmergencyType.GENERAL.value,
            "description": QUICK_ALERT_DESCRIPTION,
        })

    async def _post(
        self, type: EmergencyType, description: str, success: str, failure: str
    ) -> bool:
        identity = self._identity()
        if identity is None:
            self._notifier.error(LOGIN_REQUIRED_MESSAGE)
            return False
        try:
            position = await locate(self._geolocation)
            alert = EmergencyAlert(
                type=type,
                description=description,
                location=GeoPosition(latitude=position.latitude, longitude=position.longitude),
                user_id=identity.user_id,
            )
            await self._api.emergency.send_alert(alert)
        except ServiceHubError as exc:
            logger.error("Emergency alert (%s) failed: %s", type.value, exc)
            if not notified_by_client(exc):
                self._notifier.error(failure)
            return False
        self._notifier.success(success)
        return True
