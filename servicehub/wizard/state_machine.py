"""
Finite state machine for the five-step booking wizard.

Steps are strictly linear: forward and back one step at a time. The only
jump is the expert shortcut, which starts the wizard on LOCATION when an
expert was chosen before booking. SUBMITTED is terminal.

Usage:
    sm = WizardStateMachine()
    sm.transition(WizardTrigger.NEXT)
    assert sm.current_step == WizardStep.LOCATION
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from servicehub.errors import ServiceHubError

logger = logging.getLogger(__name__)


class WizardStep(int, Enum):
    """Wizard states, numbered as shown to the customer."""
    SERVICE = 1
    LOCATION = 2
    DATETIME = 3
    EXPERT = 4
    REVIEW = 5
    SUBMITTED = 6

    @property
    def title(self) -> str:
        return _STEP_TITLES[self][0]

    @property
    def description(self) -> str:
        return _STEP_TITLES[self][1]


_STEP_TITLES: dict[WizardStep, tuple[str, str]] = {
    WizardStep.SERVICE: ("Service", "Choose service type"),
    WizardStep.LOCATION: ("Location", "Where do you need service?"),
    WizardStep.DATETIME: ("Date & Time", "When should we come?"),
    WizardStep.EXPERT: ("Expert", "Choose your expert"),
    WizardStep.REVIEW: ("Review", "Confirm and pay"),
    WizardStep.SUBMITTED: ("Booked", "Booking created"),
}


class WizardTrigger(str, Enum):
    """Events that cause step transitions."""
    NEXT = "next"
    PREV = "prev"
    EXPERT_PRESELECTED = "expert_preselected"
    SUBMIT_SUCCEEDED = "submit_succeeded"
    SUBMIT_FAILED = "submit_failed"


@dataclass
class Transition:
    """A single valid step transition."""
    from_step: WizardStep
    to_step: WizardStep
    trigger: WizardTrigger


@dataclass
class StepEntry:
    """Recorded history entry for a step visit."""
    step: WizardStep
    entered_at: datetime
    trigger: Optional[WizardTrigger] = None


class InvalidTransitionError(ServiceHubError):
    """Raised when a transition is not valid from the current step."""


class WizardStateMachine:
    """
    Deterministic step controller for the booking wizard.

    Every transition must be explicitly defined; anything else is rejected
    with an error listing the triggers valid from the current step.
    """

    TRANSITIONS: list[Transition] = [
        # --- Forward ---
        Transition(WizardStep.SERVICE, WizardStep.LOCATION, WizardTrigger.NEXT),
        Transition(WizardStep.LOCATION, WizardStep.DATETIME, WizardTrigger.NEXT),
        Transition(WizardStep.DATETIME, WizardStep.EXPERT, WizardTrigger.NEXT),
        Transition(WizardStep.EXPERT, WizardStep.REVIEW, WizardTrigger.NEXT),

        # --- Back ---
        Transition(WizardStep.LOCATION, WizardStep.SERVICE, WizardTrigger.PREV),
        Transition(WizardStep.DATETIME, WizardStep.LOCATION, WizardTrigger.PREV),
        Transition(WizardStep.EXPERT, WizardStep.DATETIME, WizardTrigger.PREV),
        Transition(WizardStep.REVIEW, WizardStep.EXPERT, WizardTrigger.PREV),

        # --- Expert chosen before booking ---
        Transition(WizardStep.SERVICE, WizardStep.LOCATION, WizardTrigger.EXPERT_PRESELECTED),

        # --- Submission ---
        Transition(WizardStep.REVIEW, WizardStep.SUBMITTED, WizardTrigger.SUBMIT_SUCCEEDED),
        Transition(WizardStep.REVIEW, WizardStep.REVIEW, WizardTrigger.SUBMIT_FAILED),
    ]

    def __init__(self) -> None:
        self._current_step = WizardStep.SERVICE
        self._history: list[StepEntry] = [
            StepEntry(step=WizardStep.SERVICE, entered_at=datetime.now(timezone.utc))
        ]
        self._failed_submissions: int = 0

    @property
    def current_step(self) -> WizardStep:
        return self._current_step

    @property
    def failed_submissions(self) -> int:
        return self._failed_submissions

    def transition(self, trigger: WizardTrigger) -> WizardStep:
        """
        Execute a step transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new wizard step.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_step == self._current_step and t.trigger == trigger:
                old_step = self._current_step
                self._current_step = t.to_step

                self._history.append(StepEntry(
                    step=self._current_step,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))

                if trigger == WizardTrigger.SUBMIT_FAILED:
                    self._failed_submissions += 1

                logger.debug(
                    "Wizard transition: %s -> %s (trigger: %s)",
                    old_step.name, self._current_step.name, trigger.value,
                )
                return self._current_step

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_step.name}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def can(self, trigger: WizardTrigger) -> bool:
        return trigger in self.get_valid_triggers()

    def get_valid_triggers(self) -> list[WizardTrigger]:
        """Return all triggers valid from the current step."""
        return [t.trigger for t in self.TRANSITIONS if t.from_step == self._current_step]

    def get_history(self) -> list[StepEntry]:
        """Return the full transition history."""
        return list(self._history)

    def get_step_trace(self) -> list[int]:
        """Return ordered list of step numbers visited."""
        return [entry.step.value for entry in self._history]

    def is_terminal(self) -> bool:
        """Check if the booking has been submitted."""
        return self._current_step == WizardStep.SUBMITTED
