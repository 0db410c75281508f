"""
Steady Vitality - Assignment State Machine

Plain rules over a CoachTraineeAssignment record. Nothing here touches
storage; callers persist through assignments.service.

    active --pause--> paused --resume--> active
    active|paused --complete--> completed
    anything but terminated --terminate--> terminated

Illegal transitions raise InvalidTransitionError; they never no-op.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from steady_vitality.assignments.models import AssignmentStatus, CoachTraineeAssignment
from steady_vitality.auth.models import utcnow


MIN_RATING = 1
MAX_RATING = 5


class AssignmentError(Exception):
    """Base class for assignment rule violations."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidTransitionError(AssignmentError):
    """Transition not allowed from the current status."""

    def __init__(self, message: str, status: AssignmentStatus):
        self.status = status
        super().__init__(message)


class InvalidRatingError(AssignmentError):
    pass


class InvalidAssignmentError(AssignmentError):
    """Assignment cannot be created between these users."""


def _append_note(assignment: CoachTraineeAssignment, line: str) -> None:
    assignment.notes = f"{assignment.notes}\n{line}" if assignment.notes else line


def _days_between(start: datetime, end: datetime) -> int:
    return (end - start).days


# =============================================================================
# Transitions
# =============================================================================

def pause(assignment: CoachTraineeAssignment, reason: Optional[str] = None) -> None:
    """active -> paused. A ``[PAUSED] reason`` note is appended only when a reason is given."""
    if assignment.status != AssignmentStatus.ACTIVE:
        raise InvalidTransitionError("Can only pause active assignments", assignment.status)

    assignment.status = AssignmentStatus.PAUSED
    assignment.paused_at = utcnow()
    assignment.is_active = False
    if reason:
        _append_note(assignment, f"[PAUSED] {reason}")


def resume(assignment: CoachTraineeAssignment, reason: Optional[str] = None) -> None:
    """paused -> active. A ``[RESUMED] reason`` note is appended only when a reason is given."""
    if assignment.status != AssignmentStatus.PAUSED:
        raise InvalidTransitionError("Can only resume paused assignments", assignment.status)

    assignment.status = AssignmentStatus.ACTIVE
    assignment.resumed_at = utcnow()
    assignment.is_active = True
    if reason:
        _append_note(assignment, f"[RESUMED] {reason}")


def complete(
    assignment: CoachTraineeAssignment,
    reason: Optional[str] = None,
    completed_by: Optional[UUID] = None,
) -> None:
    if assignment.status not in (AssignmentStatus.ACTIVE, AssignmentStatus.PAUSED):
        raise InvalidTransitionError(
            "Can only complete active or paused assignments", assignment.status
        )

    assignment.status = AssignmentStatus.COMPLETED
    assignment.ended_at = utcnow()
    assignment.is_active = False
    assignment.terminated_by = completed_by
    if reason:
        assignment.termination_reason = reason
        _append_note(assignment, f"[COMPLETED] {reason}")


def terminate(
    assignment: CoachTraineeAssignment,
    reason: str,
    terminated_by: Optional[UUID] = None,
) -> None:
    """Terminal; allowed from every state except terminated."""
    if assignment.status == AssignmentStatus.TERMINATED:
        raise InvalidTransitionError("Assignment is already terminated", assignment.status)

    assignment.status = AssignmentStatus.TERMINATED
    assignment.ended_at = utcnow()
    assignment.is_active = False
    assignment.termination_reason = reason
    assignment.terminated_by = terminated_by
    _append_note(assignment, f"[TERMINATED] {reason}")


# =============================================================================
# Derived values
# =============================================================================

def duration(assignment: CoachTraineeAssignment) -> Optional[int]:
    """Whole days from assignment to end; None while not ended."""
    if assignment.ended_at is None:
        return None
    return _days_between(assignment.assigned_at, assignment.ended_at)


def days_active(assignment: CoachTraineeAssignment, now: Optional[datetime] = None) -> int:
    end = assignment.ended_at or now or utcnow()
    return _days_between(assignment.assigned_at, end)


def session_completion_rate(assignment: CoachTraineeAssignment) -> float:
    if not assignment.total_sessions:
        return 0.0
    return assignment.completed_sessions / assignment.total_sessions * 100


def days_since_last_interaction(
    assignment: CoachTraineeAssignment,
    now: Optional[datetime] = None,
) -> Optional[int]:
    if assignment.last_interaction_at is None:
        return None
    return _days_between(assignment.last_interaction_at, now or utcnow())


def is_completed(assignment: CoachTraineeAssignment) -> bool:
    return assignment.status == AssignmentStatus.COMPLETED


def is_paused(assignment: CoachTraineeAssignment) -> bool:
    return assignment.status == AssignmentStatus.PAUSED


def is_terminated(assignment: CoachTraineeAssignment) -> bool:
    return assignment.status == AssignmentStatus.TERMINATED


# =============================================================================
# Mutators
# =============================================================================

def update_last_interaction(assignment: CoachTraineeAssignment) -> None:
    assignment.last_interaction_at = utcnow()


def increment_session_count(assignment: CoachTraineeAssignment) -> None:
    assignment.total_sessions += 1


def complete_session(assignment: CoachTraineeAssignment) -> None:
    assignment.completed_sessions += 1
    update_last_interaction(assignment)


def add_note(
    assignment: CoachTraineeAssignment,
    note: str,
    author: Optional[str] = None,
) -> None:
    """Append ``[ISO timestamp] author: note``; earlier notes are kept."""
    timestamp = utcnow().isoformat()
    line = f"[{timestamp}] {author}: {note}" if author else f"[{timestamp}] {note}"
    _append_note(assignment, line)


# JSON columns only register a change when a new object is assigned

def set_preference(assignment: CoachTraineeAssignment, key: str, value: Any) -> None:
    assignment.preferences = {**(assignment.preferences or {}), key: value}


def get_preference(assignment: CoachTraineeAssignment, key: str, default: Any = None) -> Any:
    value = (assignment.preferences or {}).get(key)
    return default if value is None else value


def set_goal(assignment: CoachTraineeAssignment, key: str, value: Any) -> None:
    assignment.goals = {**(assignment.goals or {}), key: value}


def get_goal(assignment: CoachTraineeAssignment, key: str, default: Any = None) -> Any:
    value = (assignment.goals or {}).get(key)
    return default if value is None else value


def set_satisfaction_rating(
    assignment: CoachTraineeAssignment,
    rating: float,
    feedback: Optional[str] = None,
) -> None:
    """
    Store a 1-5 rating rounded to two decimals.

    Raises:
        InvalidRatingError: Rating outside 1..5, or not a number
    """
    # NaN compares False both ways
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidRatingError("Rating must be between 1 and 5")

    assignment.satisfaction_rating = round(float(rating), 2)
    if feedback:
        assignment.client_feedback = feedback
