"""
Booking wizard: collects a ``BookingDraft`` over five steps and submits it.

Implements the step contract of the booking flow:
    current_slice()  -> the draft slice the current step edits
    update(slice)    -> shallow merge of that slice into the draft
    next(slice=None) -> validate, merge, advance; a failure changes nothing
    prev()           -> back one step

Read-only lookups (expert directory, geolocation) may run on any step.
Nothing is written to the backend until ``submit()`` on the review step.
"""

import inspect
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Optional, Union

from servicehub.catalog import URGENCY_LEVELS, get_category_info
from servicehub.client.api import ApiClient
from servicehub.client.notifications import LoggingNotifier, Notifier
from servicehub.config import WizardConfig, settings
from servicehub.errors import GeolocationError, ServiceHubError, notified_by_client
from servicehub.geolocation import GeolocationProvider, locate
from servicehub.schemas.booking_schema import (
    Booking,
    BookingDraft,
    Coordinates,
    Pricing,
)
from servicehub.schemas.expert_schema import ExpertRef, ExpertSummary
from servicehub.utils import format_coordinates
from servicehub.wizard.state_machine import (
    InvalidTransitionError,
    WizardStateMachine,
    WizardStep,
    WizardTrigger,
)
from servicehub.wizard.steps import STEP_DEFINITIONS, StepValidator

logger = logging.getLogger(__name__)

SubmittedHook = Callable[[Booking], Union[None, Awaitable[None]]]


class BookingWizard:
    """Five-step booking draft collector with a terminal submission step."""

    def __init__(
        self,
        api: ApiClient,
        notifier: Optional[Notifier] = None,
        config: Optional[WizardConfig] = None,
        today: Optional[Callable[[], date]] = None,
        on_submitted: Optional[SubmittedHook] = None,
    ) -> None:
        self._api = api
        self._notifier = notifier or api.notifier or LoggingNotifier()
        self._config = config or settings.wizard
        self._validator = StepValidator(self._config, today)
        self._sm = WizardStateMachine()
        self._draft = BookingDraft()
        self._experts: list[ExpertSummary] = []
        self._pending = False
        self._closed = False
        self._on_submitted = on_submitted
        self.booking: Optional[Booking] = None
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def current_step(self) -> WizardStep:
        return self._sm.current_step

    @property
    def draft(self) -> BookingDraft:
        return self._draft

    @property
    def pending(self) -> bool:
        """True while an expert lookup or the submission is in flight."""
        return self._pending

    @property
    def experts(self) -> list[ExpertSummary]:
        return list(self._experts)

    @property
    def state_machine(self) -> WizardStateMachine:
        return self._sm

    @property
    def is_complete(self) -> bool:
        return self._sm.is_terminal()

    def date_window(self) -> tuple[date, date]:
        return self._validator.date_window()

    def current_slice(self) -> Any:
        """The draft slice edited by the current step (the whole draft on review)."""
        definition = STEP_DEFINITIONS.get(self.current_step)
        if definition is None or definition.slice_name is None:
            return self._draft
        return getattr(self._draft, definition.slice_name)

    # ------------------------------------------------------------------ #
    # Step contract
    # ------------------------------------------------------------------ #

    def update(self, value: Any) -> BookingDraft:
        """Shallow-merge the current step's slice into the draft.

        The review step accepts a ``Pricing`` update (materials, discount).
        """
        self._ensure_open()
        step = self.current_step
        if step == WizardStep.REVIEW and isinstance(value, Pricing):
            self._draft = self._draft.with_pricing(value)
            return self._draft

        definition = STEP_DEFINITIONS[step]
        if definition.slice_name is None or not isinstance(value, definition.slice_type):
            raise TypeError(
                f"Step {step.name} expects {definition.slice_type.__name__}, "
                f"got {type(value).__name__}"
            )
        self._draft = self._draft.update(**{definition.slice_name: value})
        logger.debug("Draft slice '%s' updated on step %s", definition.slice_name, step.name)
        return self._draft

    def next(self, value: Any = None) -> tuple[bool, str]:
        """
        Validate the step's slice and advance.

        Args:
            value: The step's new slice. When omitted, the slice already in
                the draft is validated.

        Returns:
            (ok, message). On failure the draft and the step are unchanged.
        """
        self._ensure_open()
        step = self.current_step
        candidate = self.current_slice() if value is None else value

        if value is not None:
            definition = STEP_DEFINITIONS[step]
            if not isinstance(value, definition.slice_type):
                raise TypeError(
                    f"Step {step.name} expects {definition.slice_type.__name__}, "
                    f"got {type(value).__name__}"
                )

        ok, message = self._validator.validate(step, candidate)
        if not ok:
            self._notifier.error(message)
            return False, message

        if not self._sm.can(WizardTrigger.NEXT):
            return False, "Review is the last step. Submit the booking to continue."

        if value is not None:
            self.update(value)
        new_step = self._sm.transition(WizardTrigger.NEXT)
        return True, f"Continue to {new_step.title}"

    def prev(self) -> WizardStep:
        """Go back one step. A no-op on the first step."""
        if not self._closed and self._sm.can(WizardTrigger.PREV):
            self._sm.transition(WizardTrigger.PREV)
        return self.current_step

    def close(self) -> None:
        """Detach the wizard from its view. Late lookup responses are ignored."""
        self._closed = True

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    async def preselect_expert(self, expert_id: str) -> bool:
        """Start from an expert chosen elsewhere and skip to the location step."""
        self._ensure_open()
        if not self._sm.can(WizardTrigger.EXPERT_PRESELECTED):
            raise InvalidTransitionError(
                f"An expert can only be preselected on step {WizardStep.SERVICE.name}"
            )
        try:
            expert = await self._api.experts.get(expert_id)
        except ServiceHubError as exc:
            logger.warning("Could not load expert %s: %s", expert_id, exc)
            self._notifier.error("Failed to load expert details")
            return False
        if self._closed:
            return False

        primary = expert.primary_service
        service = self._draft.service.model_copy(
            update={"category": primary.category if primary else None}
        )
        self._draft = self._draft.with_service(service)
        self._record_expert(expert)
        self._sm.transition(WizardTrigger.EXPERT_PRESELECTED)
        logger.info("Expert %s preselected, starting on %s", expert.id, self.current_step.name)
        return True

    async def use_current_location(
        self,
        provider: Optional[GeolocationProvider],
        timeout: Optional[float] = None,
    ) -> tuple[bool, str]:
        """Fill the location slice's coordinates and address from a GPS fix."""
        self._ensure_open()
        if self.current_step != WizardStep.LOCATION:
            raise InvalidTransitionError("Current location can only be used on the location step")
        try:
            position = await locate(provider, timeout)
        except GeolocationError as exc:
            message = "Unable to get your location. Please enter address manually."
            logger.info("Geolocation unavailable: %s", exc)
            self._notifier.error(message)
            return False, message
        if self._closed:
            return False, "Wizard closed"

        location = self._draft.location.model_copy(update={
            "coordinates": Coordinates(lat=position.latitude, lng=position.longitude),
            "address": format_coordinates(position.latitude, position.longitude),
        })
        self.update(location)
        return True, location.address

    async def load_experts(self) -> list[ExpertSummary]:
        """Look up experts for the draft's category near its coordinates.

        Without a category or coordinates the list is empty and no request
        is made. The result is display data in whatever order the backend
        returned it.
        """
        self._ensure_open()
        category = self._draft.service.category
        coordinates = self._draft.location.coordinates
        if category is None or coordinates is None:
            self._experts = []
            return []

        self._pending = True
        try:
            experts = await self._api.experts.search(
                category, coordinates, limit=self._config.expert_page_size, page=1
            )
        except ServiceHubError as exc:
            logger.warning("Expert lookup failed: %s", exc)
            self.last_error = getattr(exc, "message", None) or str(exc)
            experts = []
        finally:
            self._pending = False

        if self._closed:
            return []
        self._experts = experts
        logger.debug("Loaded %d experts for %s", len(experts), category.value)
        return self.experts

    def select_expert(self, expert: ExpertSummary) -> ExpertRef:
        """Record a reference to ``expert`` in the draft."""
        self._ensure_open()
        if self.current_step != WizardStep.EXPERT:
            raise InvalidTransitionError("Experts can only be selected on the expert step")
        return self._record_expert(expert)

    def _record_expert(self, expert: ExpertSummary) -> ExpertRef:
        category = self._draft.service.category
        ref = expert.to_ref(category)
        self._draft = self._draft.with_expert(ref)
        rate = expert.rate_for(category)
        if rate is not None:
            self._draft = self._draft.with_pricing(
                self._draft.pricing.model_copy(update={"base_price": rate})
            )
        return ref

    # ------------------------------------------------------------------ #
    # Review and submission
    # ------------------------------------------------------------------ #

    def summary(self) -> str:
        """Read-back text for the review step."""
        draft = self._draft
        lines = []
        if draft.service.category is not None:
            info = get_category_info(draft.service.category)
            lines.append(f"  Service: {info.icon} {info.name}")
        if draft.service.subcategory:
            lines.append(f"  Subcategory: {draft.service.subcategory}")
        if draft.service.description:
            lines.append(f"  Description: {draft.service.description}")
        lines.append(f"  Urgency: {URGENCY_LEVELS[draft.service.urgency].label}")
        if draft.location.address:
            lines.append(f"  Address: {draft.location.address}")
        if draft.location.landmark:
            lines.append(f"  Landmark: {draft.location.landmark}")
        if draft.location.access_instructions:
            lines.append(f"  Access Instructions: {draft.location.access_instructions}")
        if draft.scheduling.preferred_date is not None:
            lines.append(f"  Date: {draft.scheduling.preferred_date.isoformat()}")
        if draft.scheduling.flexible:
            lines.append("  Time: Flexible")
        elif draft.scheduling.has_time_window:
            window = draft.scheduling.preferred_time
            lines.append(f"  Time: {window.start} - {window.end}")
        if draft.expert is not None:
            lines.append(f"  Expert: {draft.expert.name or draft.expert.id}")
        lines.append(f"  Total: {draft.pricing.final_price:.2f}")
        return "Here's your booking:\n" + "\n".join(lines)

    async def submit(self) -> Optional[Booking]:
        """
        Create the booking from the draft.

        Returns:
            The created booking, or None if validation or the request
            failed. On failure the wizard stays on the review step and
            ``submit()`` may simply be called again.
        """
        self._ensure_open()
        if not self._sm.can(WizardTrigger.SUBMIT_SUCCEEDED):
            raise InvalidTransitionError(
                f"Cannot submit from step {self.current_step.name}; finish the review step first"
            )
        if self._pending:
            logger.debug("Submission already in flight")
            return None

        ok, message = self._validator.validate(WizardStep.REVIEW, self._draft)
        if not ok:
            self.last_error = message
            self._notifier.error(message)
            return None

        self._pending = True
        try:
            booking = await self._api.bookings.create(self._draft)
        except ServiceHubError as exc:
            self._sm.transition(WizardTrigger.SUBMIT_FAILED)
            self.last_error = getattr(exc, "message", None) or "Failed to create booking"
            logger.warning("Booking submission failed: %s", exc)
            if not notified_by_client(exc):
                self._notifier.error(self.last_error)
            return None
        finally:
            self._pending = False

        self._sm.transition(WizardTrigger.SUBMIT_SUCCEEDED)
        self.booking = booking
        self.last_error = None
        self._notifier.success("Booking created successfully!")
        logger.info("Booking %s submitted", booking.id)

        if self._on_submitted is not None:
            result = self._on_submitted(booking)
            if inspect.isawaitable(result):
                await result
        return booking

    def _ensure_open(self) -> None:
        if self._closed:
            raise InvalidTransitionError("Wizard has been closed")
        if self._sm.is_terminal():
            raise InvalidTransitionError("Booking already submitted")
