from servicehub.wizard.booking_wizard import BookingWizard
from servicehub.wizard.state_machine import (
    InvalidTransitionError,
    WizardStateMachine,
    WizardStep,
    WizardTrigger,
)
from servicehub.wizard.steps import QUICK_TIME_WINDOWS, TIME_SLOTS, StepValidator

__all__ = [
    "BookingWizard",
    "WizardStateMachine",
    "WizardStep",
    "WizardTrigger",
    "InvalidTransitionError",
    "StepValidator",
    "TIME_SLOTS",
    "QUICK_TIME_WINDOWS",
]
