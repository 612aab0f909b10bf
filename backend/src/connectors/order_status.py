"""ERP order placement state machine.

State Flow:
    VALIDATING → BUILDING_SCRIPT → EXECUTING → COMMITTED
                                             → ROLLING_BACK → FAILED

VALIDATING and BUILDING_SCRIPT may fail directly (nothing was sent to the
ERP yet, so there is nothing to roll back).

Terminal States: COMMITTED, FAILED
"""

from enum import Enum
from typing import List


class OrderState(str, Enum):
    """State of one order placement."""
    VALIDATING = "VALIDATING"
    BUILDING_SCRIPT = "BUILDING_SCRIPT"
    EXECUTING = "EXECUTING"
    COMMITTED = "COMMITTED"
    ROLLING_BACK = "ROLLING_BACK"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS = {
    OrderState.VALIDATING: [
        OrderState.BUILDING_SCRIPT,
        OrderState.FAILED
    ],
    OrderState.BUILDING_SCRIPT: [
        OrderState.EXECUTING,
        OrderState.FAILED
    ],
    OrderState.EXECUTING: [
        OrderState.COMMITTED,
        OrderState.ROLLING_BACK
    ],
    OrderState.ROLLING_BACK: [OrderState.FAILED],
    OrderState.COMMITTED: [],  # Terminal state
    OrderState.FAILED: [],  # Terminal state
}


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


def validate_transition(current_state: OrderState, new_state: OrderState) -> None:
    """Validate that a state transition is allowed.

    Args:
        current_state: Current order state
        new_state: Target state to transition to

    Raises:
        StateTransitionError: If transition is not allowed
    """
    allowed = ALLOWED_TRANSITIONS.get(current_state, [])
    if new_state not in allowed:
        raise StateTransitionError(
            f"Invalid transition: {current_state.value} -> {new_state.value}. "
            f"Allowed transitions from {current_state.value}: "
            f"{[s.value for s in allowed]}"
        )


def can_transition(current_state: OrderState, new_state: OrderState) -> bool:
    """Check if a state transition is allowed without raising exception."""
    return new_state in ALLOWED_TRANSITIONS.get(current_state, [])


def get_allowed_transitions(state: OrderState) -> List[OrderState]:
    return ALLOWED_TRANSITIONS.get(state, [])


def is_terminal_state(state: OrderState) -> bool:
    return len(ALLOWED_TRANSITIONS.get(state, [])) == 0


class OrderStateTracker:
    """Tracks the state of one order placement and logs every transition.

    Usage:
        tracker = OrderStateTracker(logger)
        tracker.advance(OrderState.BUILDING_SCRIPT)
    """

    def __init__(self, logger, initial_state: OrderState = OrderState.VALIDATING):
        self._logger = logger
        self.state = initial_state
        self.history = [initial_state]

    def advance(self, new_state: OrderState) -> None:
        validate_transition(self.state, new_state)
        self._logger.debug(
            f"Order state {self.state.value} -> {new_state.value}",
            extra={"order_state": new_state.value},
        )
        self.state = new_state
        self.history.append(new_state)

    def fail(self) -> None:
        """Move to FAILED, passing through ROLLING_BACK when executing."""
        if self.state == OrderState.EXECUTING:
            self.advance(OrderState.ROLLING_BACK)
        if self.state != OrderState.FAILED:
            self.advance(OrderState.FAILED)
