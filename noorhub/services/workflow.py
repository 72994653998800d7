"""
Approval workflow state machine for tasks and phases.

    not_started -> in_progress -> waiting_for_approval -> completed
                                  waiting_for_approval -> in_progress  (reject)

Reaching 100% always lands in waiting_for_approval; only an approve
action reaches completed. The functions here are pure: who may trigger a
transition is decided by services.permissions.
"""
import enum
from typing import Optional

from ..errors import InvalidProgress, InvalidStateTransition, ValidationError


MIN_PROGRESS = 0
MAX_PROGRESS = 100


class Scope(str, enum.Enum):
    TASK = "task"
    PHASE = "phase"


class WorkAction(str, enum.Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"


class WorkState(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    WAITING_FOR_APPROVAL = "waiting_for_approval"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "WorkState":
        """Normalise any stored or submitted status spelling to a WorkState."""
        if raw is None:
            return cls.NOT_STARTED
        key = str(raw).strip().lower().replace("-", " ").replace("_", " ")
        key = " ".join(key.split())
        try:
            return _LEGACY_STATUS[key]
        except KeyError:
            raise ValidationError(f"Unknown status: {raw}")

    @property
    def is_terminal(self) -> bool:
        return self is WorkState.COMPLETED

    @property
    def is_gated(self) -> bool:
        """States that only the workflow itself may set."""
        return self in (WorkState.WAITING_FOR_APPROVAL, WorkState.COMPLETED)


_LEGACY_STATUS = {
    "not started": WorkState.NOT_STARTED,
    "notstarted": WorkState.NOT_STARTED,
    "pending": WorkState.NOT_STARTED,
    "": WorkState.NOT_STARTED,
    "in progress": WorkState.IN_PROGRESS,
    "inprogress": WorkState.IN_PROGRESS,
    "waiting for approval": WorkState.WAITING_FOR_APPROVAL,
    "waitingforapproval": WorkState.WAITING_FOR_APPROVAL,
    "completed": WorkState.COMPLETED,
    "complete": WorkState.COMPLETED,
    "achieved": WorkState.COMPLETED,
    "done": WorkState.COMPLETED,
}

_LABELS = {
    WorkState.NOT_STARTED: "Not Started",
    WorkState.IN_PROGRESS: "In Progress",
    WorkState.WAITING_FOR_APPROVAL: "Waiting for Approval",
    WorkState.COMPLETED: "Completed",
}


def status_label(state: WorkState, scope: Scope = Scope.TASK) -> str:
    if scope is Scope.PHASE and state is WorkState.COMPLETED:
        return "Achieved"
    return _LABELS[state]


def validate_progress(progress) -> int:
    """Return progress as int, rejecting anything outside [0, 100]. Never clamps."""
    if isinstance(progress, bool) or not isinstance(progress, int):
        raise InvalidProgress("Progress must be a whole number between 0 and 100")
    if progress < MIN_PROGRESS or progress > MAX_PROGRESS:
        raise InvalidProgress(f"Progress {progress} is outside 0-100")
    return progress


def next_state(current: WorkState, action: WorkAction, progress: Optional[int] = None) -> WorkState:
    if action is WorkAction.SUBMIT:
        value = validate_progress(progress)
        if current not in (WorkState.NOT_STARTED, WorkState.IN_PROGRESS):
            raise InvalidStateTransition(
                f"Cannot submit progress while {current.value}"
            )
        if value == MAX_PROGRESS:
            return WorkState.WAITING_FOR_APPROVAL
        return WorkState.IN_PROGRESS

    if action in (WorkAction.APPROVE, WorkAction.REJECT):
        if current is not WorkState.WAITING_FOR_APPROVAL:
            raise InvalidStateTransition(
                f"Cannot {action.value} while {current.value}; item must be waiting_for_approval"
            )
        if action is WorkAction.APPROVE:
            return WorkState.COMPLETED
        return WorkState.IN_PROGRESS

    raise InvalidStateTransition(f"Unknown action: {action}")


def progress_after_reject(scope: Scope) -> int:
    """
    Progress value an item falls back to when changes are requested.

    Phases restart at 0. Tasks stay just short of done at 99, so the next
    100% submission goes back to the admin.
    """
    if scope is Scope.PHASE:
        return MIN_PROGRESS
    return MAX_PROGRESS - 1


def check_manual_status(current: WorkState, requested: Optional[str]) -> Optional[WorkState]:
    """
    Validate a status supplied through a generic field update.

    Only not_started/in_progress may be set by hand, and never on an item that
    is already waiting for approval or completed.
    """
    if requested is None:
        return None
    target = WorkState.parse(requested)
    if target is current:
        return None
    if target.is_gated:
        raise ValidationError(f"Status {target.value} can only be reached through the approval workflow")
    if current.is_gated:
        raise InvalidStateTransition(f"Cannot change status while {current.value}")
    return target
