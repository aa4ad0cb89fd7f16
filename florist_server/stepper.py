"""Multi-step checkout form."""

import logging
from typing import Literal, NamedTuple, Optional

from .delivery import MIN_POSTAL_CODE_LENGTH
from .models import CheckoutDraft, StepperState

logger = logging.getLogger(__name__)

StepEvent = Literal["next", "back", "reset"]


class Step(NamedTuple):
    title: str
    # (draft field, label) pairs that must not be blank
    required: tuple[tuple[str, str], ...]


STEPS: tuple[Step, ...] = (
    Step(
        "Customer Information",
        (
            ("customer_name", "Full Name"),
            ("customer_email", "Email"),
            ("customer_phone", "Phone"),
            ("customer_address", "Address"),
            ("customer_city", "City"),
            ("customer_state", "State"),
            ("customer_zip", "ZIP Code"),
        ),
    ),
    Step(
        "Recipient Information",
        (
            ("recipient_name", "Recipient Name"),
            ("recipient_phone", "Recipient Phone"),
        ),
    ),
    Step(
        "Delivery Information",
        (
            ("delivery_address", "Delivery Address"),
            ("delivery_city", "City"),
            ("delivery_state", "State"),
            ("delivery_zip", "ZIP Code"),
            ("delivery_date", "Delivery Date"),
        ),
    ),
    Step(
        "Review & Payment",
        (
            ("card_number", "Card Number"),
            ("card_expiry", "Expiry (MM/YY)"),
            ("card_cvv", "CVV"),
        ),
    ),
)

TOTAL_STEPS = len(STEPS)
DELIVERY_STEP = 3

FIELD_LABELS: dict[str, str] = {
    field: label for step in STEPS for field, label in step.required
}


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def validate_step(step: int, draft: CheckoutDraft) -> dict[str, str]:
    """Return ``{field: message}`` for every invalid field on ``step``."""
    if step < 1 or step > TOTAL_STEPS:
        return {}

    errors: dict[str, str] = {}
    for field, label in STEPS[step - 1].required:
        if _is_blank(getattr(draft, field)):
            errors[field] = f"{label} is required"

    if step == DELIVERY_STEP:
        # Presence alone is not enough for these two
        if len(draft.delivery_zip.strip()) < MIN_POSTAL_CODE_LENGTH:
            errors["delivery_zip"] = "Please enter a valid ZIP code (5 digits)"
        if draft.delivery_date is None:
            errors["delivery_date"] = "Please select a delivery date"

    return errors


def transition(state: StepperState, event: StepEvent, draft: CheckoutDraft) -> StepperState:
    """Apply a navigation event and return the new stepper state."""
    if event == "reset":
        return StepperState(total_steps=state.total_steps)

    if event == "back":
        return StepperState(
            current_step=max(1, state.current_step - 1),
            total_steps=state.total_steps,
        )

    if event == "next":
        errors = validate_step(state.current_step, draft)
        if errors:
            return StepperState(
                current_step=state.current_step,
                total_steps=state.total_steps,
                errors=errors,
                focus_field=next(iter(errors)),
            )
        return StepperState(
            current_step=min(state.total_steps, state.current_step + 1),
            total_steps=state.total_steps,
        )

    raise ValueError(f"Unknown stepper event: {event}")


class CheckoutStepper:
    """Holds the stepper state and applies transitions to it."""

    def __init__(self) -> None:
        self.state = StepperState(total_steps=TOTAL_STEPS)

    @property
    def current_step(self) -> int:
        return self.state.current_step

    @property
    def current_title(self) -> str:
        return STEPS[self.state.current_step - 1].title

    @property
    def errors(self) -> dict[str, str]:
        return self.state.errors

    @property
    def is_final(self) -> bool:
        return self.state.is_final

    def next(self, draft: CheckoutDraft) -> bool:
        """Advance if the current step validates. Returns True when the step changed."""
        before = self.state.current_step
        self.state = transition(self.state, "next", draft)
        if self.state.errors:
            logger.info(f"Step {before} has {len(self.state.errors)} invalid field(s)")
        return self.state.current_step != before

    def back(self) -> None:
        self.state = transition(self.state, "back", CheckoutDraft())

    def reset(self) -> None:
        self.state = transition(self.state, "reset", CheckoutDraft())


def validate_draft(draft: CheckoutDraft, through_step: Optional[int] = None) -> dict[str, str]:
    """Validate every step up to ``through_step`` (all steps by default)."""
    last = through_step or TOTAL_STEPS
    errors: dict[str, str] = {}
    for step in range(1, last + 1):
        errors.update(validate_step(step, draft))
    return errors
