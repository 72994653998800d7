"""
Phase progress derived from its tasks.

A phase carries two progress values that are never merged:
- explicit: written by phase-level progress updates (Phase.progress)
- derived: share of the phase's tasks that are completed (Phase.derived_progress)
Callers pick which one drives a badge via `mode`.
"""
from dataclasses import dataclass
from typing import Iterable

from ..errors import ValidationError
from ..models.models import Phase, Task
from .workflow import WorkState


EXPLICIT = "explicit"
DERIVED = "derived"
PROGRESS_MODES = (EXPLICIT, DERIVED)


@dataclass(frozen=True)
class PhaseProgress:
    derived_progress: int
    explicit_progress: int
    completed_count: int
    total_count: int


def percent(completed: int, total: int) -> int:
    """round(100 * completed / total), halves rounded up; 0 for an empty phase."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def _task_states(tasks: Iterable[Task]) -> list:
    return [WorkState.parse(t.status) for t in tasks]


def derive_phase_progress(phase: Phase) -> PhaseProgress:
    states = _task_states(phase.tasks)
    completed = sum(1 for s in states if s is WorkState.COMPLETED)
    return PhaseProgress(
        derived_progress=percent(completed, len(states)),
        explicit_progress=phase.progress or 0,
        completed_count=completed,
        total_count=len(states),
    )


def derived_status(phase: Phase) -> WorkState:
    states = _task_states(phase.tasks)
    if not states:
        return WorkState.NOT_STARTED
    if all(s is WorkState.COMPLETED for s in states):
        return WorkState.COMPLETED
    open_states = [s for s in states if s is not WorkState.COMPLETED]
    if all(s is WorkState.WAITING_FOR_APPROVAL for s in open_states):
        return WorkState.WAITING_FOR_APPROVAL
    if any(s is not WorkState.NOT_STARTED for s in states):
        return WorkState.IN_PROGRESS
    return WorkState.NOT_STARTED


def refresh_phase_progress(phase: Phase) -> PhaseProgress:
    summary = derive_phase_progress(phase)
    phase.derived_progress = summary.derived_progress
    return summary


def check_mode(mode: str) -> str:
    if mode not in PROGRESS_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(PROGRESS_MODES)}")
    return mode


def display_progress(phase: Phase, mode: str) -> dict:
    """Progress and status badge for a phase, driven by the mode the caller picked."""
    check_mode(mode)
    summary = derive_phase_progress(phase)
    if mode == DERIVED:
        return {"mode": mode, "progress": summary.derived_progress, "status": derived_status(phase).value}
    return {"mode": mode, "progress": summary.explicit_progress, "status": WorkState.parse(phase.status).value}
