"""Position state machine.

    active ──────────────► completed
      │  └─► expired_pending ─┘
      ├─► deactivated   (expired_pending too)
      └─► deleted       (expired_pending too)

Terminal states have no outgoing edges.
"""

from src.bp_common.errors import InvalidStatusTransitionError
from src.bp_distribution.domain.models import PositionStatus

_TERMINATIONS = (
    PositionStatus.COMPLETED,
    PositionStatus.DEACTIVATED,
    PositionStatus.DELETED,
)

TRANSITIONS: dict[PositionStatus, frozenset[PositionStatus]] = {
    PositionStatus.ACTIVE: frozenset({PositionStatus.EXPIRED_PENDING, *_TERMINATIONS}),
    PositionStatus.EXPIRED_PENDING: frozenset(_TERMINATIONS),
    PositionStatus.COMPLETED: frozenset(),
    PositionStatus.DEACTIVATED: frozenset(),
    PositionStatus.DELETED: frozenset(),
}


def can_transition(current: PositionStatus, target: PositionStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(current: PositionStatus, target: PositionStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(current.value, target.value)


def sources_for(target: PositionStatus) -> tuple[PositionStatus, ...]:
    """Every state that may move to target, for conditional status updates."""
    return tuple(s for s, targets in TRANSITIONS.items() if target in targets)


def requires_end_at(status: PositionStatus) -> bool:
    """end_at is set iff the position is terminal."""
    return status.is_terminal
