"""Booking draft and booking snapshot data models.

``BookingDraft`` is an immutable value: each wizard step replaces one slice
through a named setter and gets a new draft back. ``Booking`` is the
server-owned snapshot returned by the bookings endpoints.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import Field, field_validator

from servicehub.catalog import ServiceCategory, Urgency
from servicehub.schemas.base import WireModel
from servicehub.schemas.expert_schema import ExpertRef, ExpertSummary


class BookingStatus(str, Enum):
    """Server-side booking lifecycle. The client only observes it."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


ACTIVE_STATUSES = frozenset({BookingStatus.ACCEPTED, BookingStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})


class Coordinates(WireModel):
    lat: float
    lng: float


class ServiceDetails(WireModel):
    """Step 1 slice."""
    category: Optional[ServiceCategory] = None
    subcategory: str = ""
    description: str = ""
    urgency: Urgency = Urgency.MEDIUM


class LocationDetails(WireModel):
    """Step 2 slice."""
    address: str = ""
    coordinates: Optional[Coordinates] = None
    landmark: str = ""
    access_instructions: str = ""


class TimeWindow(WireModel):
    start: str = ""
    end: str = ""


class Scheduling(WireModel):
    """Step 3 slice."""
    preferred_date: Optional[date] = None
    preferred_time: TimeWindow = Field(default_factory=TimeWindow)
    flexible: bool = False

    @field_validator("preferred_date", mode="before")
    @classmethod
    def strip_time_component(cls, value: Any) -> Any:
        # The backend stores dates as midnight UTC datetimes.
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        if isinstance(value, datetime):
            return value.date()
        return value

    @property
    def has_time_window(self) -> bool:
        return bool(self.preferred_time.start and self.preferred_time.end)


class Pricing(WireModel):
    base_price: float = 0.0
    materials_cost: float = 0.0
    discount: float = 0.0

    @property
    def final_price(self) -> float:
        return max(self.base_price + self.materials_cost - self.discount, 0.0)


class BookingDraft(WireModel):
    """Composite draft assembled by the booking wizard."""

    service: ServiceDetails = Field(default_factory=ServiceDetails)
    location: LocationDetails = Field(default_factory=LocationDetails)
    scheduling: Scheduling = Field(default_factory=Scheduling)
    expert: Optional[ExpertRef] = None
    pricing: Pricing = Field(default_factory=Pricing)

    def with_service(self, service: ServiceDetails) -> "BookingDraft":
        return self.model_copy(update={"service": service})

    def with_location(self, location: LocationDetails) -> "BookingDraft":
        return self.model_copy(update={"location": location})

    def with_scheduling(self, scheduling: Scheduling) -> "BookingDraft":
        return self.model_copy(update={"scheduling": scheduling})

    def with_expert(self, expert: Optional[ExpertRef]) -> "BookingDraft":
        return self.model_copy(update={"expert": expert})

    def with_pricing(self, pricing: Pricing) -> "BookingDraft":
        return self.model_copy(update={"pricing": pricing})

    def update(self, **slices: Any) -> "BookingDraft":
        """Shallow merge: each named slice is replaced wholesale, others are kept."""
        unknown = set(slices) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown draft slice(s): {sorted(unknown)}")
        return self.model_copy(update=slices)

    def missing_fields(self) -> list[str]:
        """Required fields still unset, in wizard order."""
        missing = []
        if self.service.category is None:
            missing.append("service.category")
        if not self.service.description.strip():
            missing.append("service.description")
        if not self.location.address.strip():
            missing.append("location.address")
        if self.scheduling.preferred_date is None:
            missing.append("scheduling.preferred_date")
        if not self.scheduling.flexible and not self.scheduling.has_time_window:
            missing.append("scheduling.preferred_time")
        if self.expert is None:
            missing.append("expert")
        return missing

    def is_submittable(self) -> bool:
        return not self.missing_fields()

    def to_request(self) -> dict[str, Any]:
        """Creation payload for ``POST /bookings``. The expert goes by id only."""
        if self.expert is None:
            raise ValueError("Cannot build a booking request without an expert")
        return {
            "service": self.service.to_wire(),
            "location": self.location.to_wire(),
            "scheduling": self.scheduling.to_wire(),
            "expert": self.expert.id,
            "pricing": self.pricing.to_wire(),
        }


class ChatMessage(WireModel):
    sender: str = "user"
    message: str = ""
    type: str = "text"
    timestamp: Optional[datetime] = None


class Communication(WireModel):
    chat_messages: list[ChatMessage] = Field(default_factory=list)


class Booking(WireModel):
    """Server snapshot of a booking."""

    id: str = Field(alias="_id")
    status: BookingStatus = BookingStatus.PENDING
    service: ServiceDetails = Field(default_factory=ServiceDetails)
    location: LocationDetails = Field(default_factory=LocationDetails)
    scheduling: Scheduling = Field(default_factory=Scheduling)
    expert: Union[ExpertSummary, str, None] = None
    pricing: Pricing = Field(default_factory=Pricing)
    tracking: Optional[dict[str, Any]] = None
    communication: Communication = Field(default_factory=Communication)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def expert_id(self) -> Optional[str]:
        if isinstance(self.expert, ExpertSummary):
            return self.expert.id
        return self.expert


class BookingPage(WireModel):
    """One page of ``GET /bookings/my-bookings``."""
    bookings: list[Booking] = Field(default_factory=list)
    page: int = 1
    pages: int = 1
    total: int = 0
