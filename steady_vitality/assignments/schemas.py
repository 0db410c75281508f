"""
Steady Vitality - Assignment Request/Response Schemas
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import Field

from steady_vitality.assignments import state
from steady_vitality.assignments.models import AssignmentType, CoachTraineeAssignment
from steady_vitality.assignments.service import CoachWorkload
from steady_vitality.auth.schemas import CamelModel


class CreateAssignmentRequest(CamelModel):
    coach_id: UUID
    trainee_id: UUID
    assignment_type: AssignmentType = AssignmentType.FULL_PROGRAM
    reason: Optional[str] = Field(default=None, max_length=1000)


class TransitionRequest(CamelModel):
    """Body for pause, resume and complete; the reason is optional."""
    reason: Optional[str] = Field(default=None, max_length=1000)


class TerminateRequest(CamelModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class NoteRequest(CamelModel):
    note: str = Field(..., min_length=1, max_length=2000)


class KeyValueRequest(CamelModel):
    key: str = Field(..., min_length=1, max_length=100)
    value: Any = None


class RatingRequest(CamelModel):
    rating: float = Field(..., allow_inf_nan=False)
    feedback: Optional[str] = Field(default=None, max_length=2000)


class AssignmentResponse(CamelModel):
    """Assignment with derived progress values."""
    id: UUID
    coach_id: UUID
    trainee_id: UUID
    status: str
    assignment_type: str
    assigned_at: datetime
    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    is_active: bool
    notes: Optional[str] = None
    assignment_reason: Optional[str] = None
    termination_reason: Optional[str] = None
    total_sessions: int
    completed_sessions: int
    last_interaction_at: Optional[datetime] = None
    satisfaction_rating: Optional[float] = None
    client_feedback: Optional[str] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)
    goals: Dict[str, Any] = Field(default_factory=dict)
    duration: Optional[int] = None
    days_active: int
    session_completion_rate: float
    days_since_last_interaction: Optional[int] = None

    @classmethod
    def from_assignment(cls, assignment: CoachTraineeAssignment) -> "AssignmentResponse":
        return cls(
            id=assignment.id,
            coach_id=assignment.coach_id,
            trainee_id=assignment.trainee_id,
            status=assignment.status.value,
            assignment_type=assignment.assignment_type.value,
            assigned_at=assignment.assigned_at,
            paused_at=assignment.paused_at,
            resumed_at=assignment.resumed_at,
            ended_at=assignment.ended_at,
            is_active=assignment.is_active,
            notes=assignment.notes,
            assignment_reason=assignment.assignment_reason,
            termination_reason=assignment.termination_reason,
            total_sessions=assignment.total_sessions,
            completed_sessions=assignment.completed_sessions,
            last_interaction_at=assignment.last_interaction_at,
            satisfaction_rating=assignment.satisfaction_rating,
            client_feedback=assignment.client_feedback,
            preferences=assignment.preferences or {},
            goals=assignment.goals or {},
            duration=state.duration(assignment),
            days_active=state.days_active(assignment),
            session_completion_rate=state.session_completion_rate(assignment),
            days_since_last_interaction=state.days_since_last_interaction(assignment),
        )


class AssignmentEnvelope(CamelModel):
    success: bool = True
    assignment: AssignmentResponse


class AssignmentListResponse(CamelModel):
    success: bool = True
    assignments: List[AssignmentResponse]
    total: int


class WorkloadResponse(CamelModel):
    success: bool = True
    coach_id: UUID
    active_clients: int
    total_clients: int
    average_rating: float
    completion_rate: float

    @classmethod
    def from_workload(cls, coach_id: UUID, workload: CoachWorkload) -> "WorkloadResponse":
        return cls(
            coach_id=coach_id,
            active_clients=workload.active_clients,
            total_clients=workload.total_clients,
            average_rating=workload.average_rating,
            completion_rate=workload.completion_rate,
        )
