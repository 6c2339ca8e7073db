"""
Step-local validation for the booking wizard.

Each step validates only its own slice of the draft, synchronously, and
reports ``(ok, message)``. A failed validation never touches the draft.
Later steps never re-validate earlier ones.

Usage:
    validator = StepValidator()
    ok, msg = validator.validate(WizardStep.LOCATION, LocationDetails(address=""))
    # ok is False, msg == "Please enter your service address"
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Optional

from servicehub.config import WizardConfig, settings
from servicehub.schemas.booking_schema import (
    BookingDraft,
    LocationDetails,
    Scheduling,
    ServiceDetails,
)
from servicehub.schemas.expert_schema import ExpertRef
from servicehub.utils import is_valid_time
from servicehub.wizard.state_machine import WizardStep

logger = logging.getLogger(__name__)


def _build_time_slots(first_hour: int = 6, last_hour: int = 22) -> list[str]:
    return [
        f"{hour:02d}:{minute:02d}"
        for hour in range(first_hour, last_hour + 1)
        for minute in (0, 30)
    ]


# Half-hour slots offered by the date & time step.
TIME_SLOTS: list[str] = _build_time_slots()


@dataclass(frozen=True)
class QuickTimeWindow:
    label: str
    start: str
    end: str
    flexible: bool = False


QUICK_TIME_WINDOWS: list[QuickTimeWindow] = [
    QuickTimeWindow("Morning (9-12)", "09:00", "12:00"),
    QuickTimeWindow("Afternoon (12-3)", "12:00", "15:00"),
    QuickTimeWindow("Evening (3-6)", "15:00", "18:00"),
    QuickTimeWindow("Anytime", "", "", flexible=True),
]


@dataclass(frozen=True)
class StepDefinition:
    """Which draft slice a step owns and what it expects."""

    step: WizardStep
    slice_name: Optional[str]
    slice_type: type
    prompt: str


STEP_DEFINITIONS: dict[WizardStep, StepDefinition] = {
    WizardStep.SERVICE: StepDefinition(
        WizardStep.SERVICE, "service", ServiceDetails, "What service do you need?"
    ),
    WizardStep.LOCATION: StepDefinition(
        WizardStep.LOCATION, "location", LocationDetails, "Where do you need the service?"
    ),
    WizardStep.DATETIME: StepDefinition(
        WizardStep.DATETIME, "scheduling", Scheduling, "When should we schedule the service?"
    ),
    WizardStep.EXPERT: StepDefinition(
        WizardStep.EXPERT, "expert", ExpertRef, "Choose an Expert"
    ),
    WizardStep.REVIEW: StepDefinition(
        WizardStep.REVIEW, None, BookingDraft, "Review Your Booking"
    ),
}


class StepValidator:
    """Validates one step's slice against the scheduling window and required fields."""

    def __init__(
        self,
        config: Optional[WizardConfig] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._config = config or settings.wizard
        self._today = today or date.today

    def date_window(self) -> tuple[date, date]:
        """Earliest and latest bookable dates, inclusive."""
        today = self._today()
        return (
            today + timedelta(days=self._config.min_days_ahead),
            today + timedelta(days=self._config.max_days_ahead),
        )

    def validate(self, step: WizardStep, value: Any) -> tuple[bool, str]:
        """
        Validate a step's slice.

        Returns:
            (ok, message): message explains the failure, or is empty on success.
        """
        validators = {
            WizardStep.SERVICE: self._validate_service,
            WizardStep.LOCATION: self._validate_location,
            WizardStep.DATETIME: self._validate_scheduling,
            WizardStep.EXPERT: self._validate_expert,
            WizardStep.REVIEW: self._validate_review,
        }
        if step not in validators:
            return False, f"Nothing to validate on step {step.name}"

        error = validators[step](value)
        if error:
            logger.debug("Step %s validation failed: %s", step.name, error)
            return False, error
        return True, ""

    def _validate_service(self, service: ServiceDetails) -> Optional[str]:
        if service.category is None or not service.description.strip():
            return "Please select a service category and provide a description"
        return None

    def _validate_location(self, location: LocationDetails) -> Optional[str]:
        if not location.address.strip():
            return "Please enter your service address"
        return None

    def _validate_scheduling(self, scheduling: Scheduling) -> Optional[str]:
        if scheduling.preferred_date is None:
            return "Please select a preferred date"

        earliest, latest = self.date_window()
        if scheduling.preferred_date < earliest:
            if self._config.min_days_ahead == 1:
                return "Service can be scheduled from tomorrow onwards"
            return f"Service can be scheduled from {earliest.isoformat()} onwards"
        if scheduling.preferred_date > latest:
            return f"Service can be scheduled up to {latest.isoformat()}"

        if scheduling.flexible:
            return None
        start, end = scheduling.preferred_time.start, scheduling.preferred_time.end
        if not start or not end:
            return "Please select preferred time slots"
        if not is_valid_time(start) or not is_valid_time(end):
            return "Preferred times must be in HH:MM format"
        if end <= start:
            return "End time must be after start time"
        return None

    def _validate_expert(self, expert: Optional[ExpertRef]) -> Optional[str]:
        if expert is None:
            return "Please select an expert to continue"
        return None

    def _validate_review(self, draft: BookingDraft) -> Optional[str]:
        missing = draft.missing_fields()
        if missing:
            return f"Booking is incomplete, missing: {', '.join(missing)}"
        return None
