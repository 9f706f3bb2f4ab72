"""Batch lifecycle state machine.

    PLANNED --start--> IN_PROGRESS --complete--> COMPLETED
                        |      ^
                    pause|      |resume
                        v      |
                        PAUSED
    IN_PROGRESS, PAUSED --stop--> STOPPED

COMPLETED and STOPPED are terminal. The functions here hold no state and
do no I/O; ``BatchService`` loads the row, applies the transition inside a
transaction and publishes the result.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sgmi.core.exceptions import InvalidTransition, UnknownAction
from sgmi.models.batch import BatchStatus
from sgmi.services.production_helpers import round_minutes


class BatchAction(str, enum.Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    STOP = "stop"


# action -> (statuses it is valid from, resulting status)
TRANSITIONS: dict[BatchAction, tuple[frozenset[BatchStatus], BatchStatus]] = {
    BatchAction.START: (frozenset({BatchStatus.PLANNED}), BatchStatus.IN_PROGRESS),
    BatchAction.PAUSE: (frozenset({BatchStatus.IN_PROGRESS}), BatchStatus.PAUSED),
    BatchAction.RESUME: (frozenset({BatchStatus.PAUSED}), BatchStatus.IN_PROGRESS),
    BatchAction.COMPLETE: (frozenset({BatchStatus.IN_PROGRESS}), BatchStatus.COMPLETED),
    BatchAction.STOP: (
        frozenset({BatchStatus.IN_PROGRESS, BatchStatus.PAUSED}),
        BatchStatus.STOPPED,
    ),
}

TERMINAL_STATUSES = frozenset({BatchStatus.COMPLETED, BatchStatus.STOPPED})


class BatchState(Protocol):
    """The batch attributes the state machine reads and writes."""

    status: str
    start_time: datetime | None
    end_time: datetime | None
    paused_at: datetime | None
    pause_duration_minutes: int


@dataclass(frozen=True)
class BatchTransition:
    action: BatchAction
    previous_status: BatchStatus
    new_status: BatchStatus
    pause_minutes_added: int = 0


def parse_action(action: "str | BatchAction") -> BatchAction:
    """Resolve an action name, raising UnknownAction for anything else."""
    try:
        return BatchAction(action)
    except ValueError:
        raise UnknownAction(str(action)) from None


def allowed_actions(status: str | BatchStatus) -> list[BatchAction]:
    """Actions accepted from ``status``, in declaration order."""
    current = BatchStatus(status)
    return [action for action, (sources, _) in TRANSITIONS.items() if current in sources]


def _close_pause(batch: BatchState, now: datetime) -> int:
    if batch.paused_at is None:
        return 0
    return round_minutes(batch.paused_at, now)


def apply_action(batch: BatchState, action: "str | BatchAction", now: datetime) -> BatchTransition:
    """Validate ``action`` against the batch status and mutate the batch.

    Nothing is written to ``batch`` unless the transition is legal.

    Raises:
        UnknownAction: ``action`` is not a lifecycle action.
        InvalidTransition: the current status does not accept ``action``.
    """
    action = parse_action(action)
    previous = BatchStatus(batch.status)
    sources, target = TRANSITIONS[action]
    if previous not in sources:
        raise InvalidTransition(action.value, previous.value)

    added = 0
    if action is BatchAction.START:
        batch.start_time = now
    elif action is BatchAction.PAUSE:
        batch.paused_at = now
    elif action is BatchAction.RESUME:
        added = _close_pause(batch, now)
        batch.paused_at = None
    elif action is BatchAction.COMPLETE:
        batch.end_time = now
    elif action is BatchAction.STOP:
        if previous is BatchStatus.PAUSED:
            added = _close_pause(batch, now)
            batch.paused_at = None
        batch.end_time = now

    batch.pause_duration_minutes = (batch.pause_duration_minutes or 0) + added
    batch.status = target.value
    return BatchTransition(
        action=action,
        previous_status=previous,
        new_status=target,
        pause_minutes_added=added,
    )
