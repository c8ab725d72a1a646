"""State machine guards for listings, transactions and payouts.

Uses python-statemachine to enforce legal state transitions at the domain
level. Services fire an event on a throwaway machine built at the entity's
current status before they write the new status to a store, so no store
ever receives an illegal transition.

Listing:
    OPEN        -> SOLD         (sell)
    OPEN        -> CANCELLED    (cancel)

Transaction:
    PENDING     -> PAID         (confirm_payment)
    PENDING     -> FAILED       (reject_signature)
    PAID        -> RELEASING    (start_release)
    RELEASING   -> RELEASED     (release_confirmed)
    RELEASING   -> PAID         (release_failed)
    PAID        -> RELEASED     (skip_release)

Payout:
    PENDING     -> PROCESSING   (start_processing)
    PROCESSING  -> COMPLETED    (complete)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from token_bazaar.domain.exceptions import InvalidStateTransitionError


class _GuardMixin:
    """Shared helpers for machines that start at a persisted status."""

    def _check_start(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )

    @property
    def status(self) -> str:
        """Return the current state value as a string."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.name for event in self.allowed_events]


class ListingStateMachine(_GuardMixin, StateMachine):
    """Listing lifecycle: OPEN is left exactly once."""

    OPEN = State("OPEN", initial=True)
    SOLD = State("SOLD", final=True)
    CANCELLED = State("CANCELLED", final=True)

    sell = OPEN.to(SOLD)
    cancel = OPEN.to(CANCELLED)

    def __init__(self, current_status: str = "OPEN") -> None:
        self._check_start(current_status)
        super().__init__(start_value=current_status)


class TransactionStateMachine(_GuardMixin, StateMachine):
    """Transaction lifecycle, including the RELEASING -> PAID revert."""

    PENDING = State("PENDING", initial=True)
    PAID = State("PAID")
    RELEASING = State("RELEASING")
    RELEASED = State("RELEASED", final=True)
    FAILED = State("FAILED", final=True)

    confirm_payment = PENDING.to(PAID)
    reject_signature = PENDING.to(FAILED)
    start_release = PAID.to(RELEASING)
    release_confirmed = RELEASING.to(RELEASED)
    release_failed = RELEASING.to(PAID)
    skip_release = PAID.to(RELEASED)

    def __init__(self, current_status: str = "PENDING") -> None:
        self._check_start(current_status)
        super().__init__(start_value=current_status)


class PayoutStateMachine(_GuardMixin, StateMachine):
    """Payout lifecycle."""

    PENDING = State("PENDING", initial=True)
    PROCESSING = State("PROCESSING")
    COMPLETED = State("COMPLETED", final=True)

    start_processing = PENDING.to(PROCESSING)
    complete = PROCESSING.to(COMPLETED)

    def __init__(self, current_status: str = "PENDING") -> None:
        self._check_start(current_status)
        super().__init__(start_value=current_status)


_MACHINES: dict[str, type[_GuardMixin]] = {
    "listing": ListingStateMachine,
    "transaction": TransactionStateMachine,
    "payout": PayoutStateMachine,
}


def validate_transition(entity: str, current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine for ``entity`` at ``current_status``,
    fires the named event, and returns the resulting status string.

    Raises:
        InvalidStateTransitionError: If the transition is illegal.
        ValueError: If the entity, status or event name is unknown.
    """
    machine_cls = _MACHINES.get(entity)
    if machine_cls is None:
        raise ValueError(f"Unknown entity '{entity}'")

    current_status = str(current_status)
    sm = machine_cls(current_status=current_status)
    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(entity, current_status, event_name) from err
    return sm.status
