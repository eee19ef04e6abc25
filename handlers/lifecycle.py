"""
Task lifecycle state machine.

Transitions are an explicit table of (current status, intent) -> (next status,
side effects). Anything not in the table is rejected; `completed` has no
outgoing transitions.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from models import (
    ACTIVE_STATUSES,
    STATUS_COMPLETED,
    STATUS_PROBLEM,
    STATUS_STARTED,
)
from handlers.commands import Intent
from handlers.stats import record_completion

logger = logging.getLogger(__name__)


class Effect(Enum):
    """Side effects attached to a transition."""
    MARK_STARTED = "mark_started"
    MARK_COMPLETED = "mark_completed"
    STOP_TRACKING = "stop_tracking"
    RECORD_STATS = "record_stats"


STATUS_INTENTS = (Intent.START, Intent.COMPLETE, Intent.PROBLEM)

_START = (STATUS_STARTED, (Effect.MARK_STARTED,))
_COMPLETE = (STATUS_COMPLETED, (Effect.MARK_COMPLETED, Effect.STOP_TRACKING, Effect.RECORD_STATS))
_PROBLEM = (STATUS_PROBLEM, ())

TRANSITIONS = {}
for _status in ACTIVE_STATUSES:
    TRANSITIONS[(_status, Intent.START)] = _START
    TRANSITIONS[(_status, Intent.COMPLETE)] = _COMPLETE
    TRANSITIONS[(_status, Intent.PROBLEM)] = _PROBLEM


@dataclass(frozen=True)
class TransitionResult:
    previous_status: str
    status: str
    effects: Tuple[Effect, ...]


def next_state(status: str, intent: Intent) -> Optional[str]:
    """Status reached by applying an intent, or None if the transition is illegal."""
    entry = TRANSITIONS.get((status, intent))
    return entry[0] if entry else None


def apply_transition(task, intent: Intent, now, integration=None) -> Optional[TransitionResult]:
    """
    Apply an intent to a task in place.

    Args:
        task: WorkerTask to mutate
        intent: START, COMPLETE or PROBLEM
        now: Timestamp used for started_at / completed_at / stopped_at
        integration: Owning integration (stats are updated on completion)

    Returns:
        TransitionResult, or None if the transition was rejected
    """
    entry = TRANSITIONS.get((task.status, intent))
    if entry is None:
        logger.info(f"Rejected {intent.value} for task {task.task_id} in status {task.status}")
        return None

    new_status, effects = entry
    previous = task.status
    task.status = new_status

    for effect in effects:
        if effect is Effect.MARK_STARTED:
            if task.started_at is None:
                task.started_at = now
        elif effect is Effect.MARK_COMPLETED:
            task.completed_at = now
        elif effect is Effect.STOP_TRACKING:
            tracking = task.location_tracking
            if tracking and tracking.enabled:
                tracking.enabled = False
                tracking.stopped_at = now
        elif effect is Effect.RECORD_STATS:
            if integration is not None:
                record_completion(integration, task)

    logger.info(f"🔄 Task {task.task_id}: {previous} -> {new_status}")
    return TransitionResult(previous_status=previous, status=new_status, effects=effects)
