"""Tracking samples, history and realtime event payloads."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from servicehub.schemas.base import WireModel
from servicehub.utils import parse_timestamp


class TrackingStatus(str, Enum):
    """Expert movement status shown on the tracking view."""
    IDLE = "idle"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    WORKING = "working"


def _coerce_eta(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


class TrackingSample(WireModel):
    """One timestamped expert position."""

    lat: float
    lng: float
    timestamp: datetime
    status: TrackingStatus = TrackingStatus.EN_ROUTE
    address: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp_value(cls, value: Any) -> Any:
        if isinstance(value, (str, int, float, datetime)):
            return parse_timestamp(value)
        return value


class TrackingHistory(WireModel):
    """Body of ``GET /tracking/history/:bookingId``."""

    history: list[TrackingSample] = Field(default_factory=list)
    estimated_arrival: Optional[str] = None

    @field_validator("estimated_arrival", mode="before")
    @classmethod
    def coerce_eta(cls, value: Any) -> Any:
        return _coerce_eta(value)

    @property
    def latest(self) -> Optional[TrackingSample]:
        if not self.history:
            return None
        return max(self.history, key=lambda s: s.timestamp)


class BookingEvent(WireModel):
    """Any push scoped to a booking (``expert-arrived``, ``tracking-started``)."""

    booking_id: str


class LocationUpdateEvent(BookingEvent):
    """``expert-location-update`` push."""

    expert_location: dict[str, Any]
    estimated_arrival: Optional[str] = None

    @field_validator("estimated_arrival", mode="before")
    @classmethod
    def coerce_eta(cls, value: Any) -> Any:
        return _coerce_eta(value)

    def to_sample(self, received_at: datetime) -> TrackingSample:
        """Build a sample, stamping it with the receive time if the push carries none."""
        payload = dict(self.expert_location)
        payload.setdefault("timestamp", received_at)
        return TrackingSample.model_validate(payload)
