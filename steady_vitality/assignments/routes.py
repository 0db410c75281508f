"""
Steady Vitality - Assignment Routes

API endpoints for coach/trainee assignments:
- POST /assignments                      - Create (coach for self, or admin)
- GET  /assignments                      - Assignments the caller is party to
- GET  /assignments/{id}                 - Read (either party or admin)
- POST /assignments/{id}/pause|resume|complete|terminate
- POST /assignments/{id}/sessions        - Schedule a session (coach)
- POST /assignments/{id}/sessions/complete
- POST /assignments/{id}/notes           - Append a note (either party)
- PUT  /assignments/{id}/preferences     - Upsert a preference (coach)
- PUT  /assignments/{id}/goals           - Upsert a goal (coach)
- PUT  /assignments/{id}/rating          - Satisfaction rating (trainee)
- GET  /coaches/{id}/workload            - Aggregates (that coach or admin)

Rule violations raise AssignmentError, answered with 400 by the app.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.assignments import service as assignment_service
from steady_vitality.assignments import state
from steady_vitality.assignments.models import CoachTraineeAssignment
from steady_vitality.assignments.schemas import (
    AssignmentEnvelope,
    AssignmentListResponse,
    AssignmentResponse,
    CreateAssignmentRequest,
    KeyValueRequest,
    NoteRequest,
    RatingRequest,
    TerminateRequest,
    TransitionRequest,
    WorkloadResponse,
)
from steady_vitality.auth.database import get_db
from steady_vitality.auth.dependencies import AuthContext, get_current_user
from steady_vitality.auth.models import Role
from steady_vitality.gateway.rbac import Permission, require_permission


router = APIRouter(prefix="/assignments", tags=["assignments"])
coaches_router = APIRouter(prefix="/coaches", tags=["assignments"])


def _forbidden(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "INSUFFICIENT_PERMISSIONS", "message": message},
    )


def _is_admin(auth: AuthContext) -> bool:
    return auth.user.role == Role.ADMIN


async def _load(db: AsyncSession, assignment_id: UUID) -> CoachTraineeAssignment:
    assignment = await assignment_service.get_assignment(db, assignment_id)
    if assignment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "ASSIGNMENT_NOT_FOUND", "message": "Assignment not found"},
        )
    return assignment


async def _load_as_party(
    db: AsyncSession, assignment_id: UUID, auth: AuthContext
) -> CoachTraineeAssignment:
    assignment = await _load(db, assignment_id)
    if not _is_admin(auth) and auth.user.id not in (assignment.coach_id, assignment.trainee_id):
        raise _forbidden("Not a party to this assignment")
    return assignment


async def _load_as_coach(
    db: AsyncSession, assignment_id: UUID, auth: AuthContext
) -> CoachTraineeAssignment:
    assignment = await _load(db, assignment_id)
    if not _is_admin(auth) and auth.user.id != assignment.coach_id:
        raise _forbidden("Only the assigned coach can change this assignment")
    return assignment


async def _saved(db: AsyncSession, assignment: CoachTraineeAssignment) -> AssignmentEnvelope:
    await assignment_service.save_assignment(db, assignment)
    return AssignmentEnvelope(assignment=AssignmentResponse.from_assignment(assignment))


@router.post(
    "",
    response_model=AssignmentEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create an assignment",
)
@require_permission(Permission.CREATE_ASSIGNMENT)
async def create_assignment(
    body: CreateAssignmentRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Coaches may only assign themselves; admins may assign any coach."""
    if not _is_admin(auth) and body.coach_id != auth.user.id:
        raise _forbidden("Coaches can only create assignments for themselves")

    assignment = await assignment_service.create_assignment(
        db,
        coach_id=body.coach_id,
        trainee_id=body.trainee_id,
        assignment_type=body.assignment_type,
        assigned_by=auth.user.id,
        reason=body.reason,
    )
    return AssignmentEnvelope(assignment=AssignmentResponse.from_assignment(assignment))


@router.get("", response_model=AssignmentListResponse, summary="List my assignments")
@require_permission(Permission.VIEW_ASSIGNMENT)
async def list_assignments(
    active_only: bool = False,
    coach_id: Optional[UUID] = None,
    trainee_id: Optional[UUID] = None,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Assignments the caller coaches or is coached in.

    Admins may instead filter by ``coach_id`` / ``trainee_id``.
    """
    if _is_admin(auth) and (coach_id or trainee_id):
        if active_only:
            found = await assignment_service.find_active_assignments(db, coach_id, trainee_id)
        elif coach_id:
            found = await assignment_service.find_by_coach(db, coach_id)
            if trainee_id:
                found = [a for a in found if a.trainee_id == trainee_id]
        else:
            found = await assignment_service.find_by_trainee(db, trainee_id)
    else:
        found = await assignment_service.find_by_coach(db, auth.user.id)
        found += await assignment_service.find_by_trainee(db, auth.user.id)
        if active_only:
            found = [a for a in found if a.is_active]
        found.sort(key=lambda a: a.assigned_at, reverse=True)

    items = [AssignmentResponse.from_assignment(a) for a in found]
    return AssignmentListResponse(assignments=items, total=len(items))


@router.get("/{assignment_id}", response_model=AssignmentEnvelope)
@require_permission(Permission.VIEW_ASSIGNMENT)
async def get_assignment(
    assignment_id: UUID,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_party(db, assignment_id, auth)
    return AssignmentEnvelope(assignment=AssignmentResponse.from_assignment(assignment))


# =============================================================================
# Transitions
# =============================================================================

@router.post("/{assignment_id}/pause", response_model=AssignmentEnvelope)
@require_permission(Permission.MANAGE_ASSIGNMENT)
async def pause_assignment(
    assignment_id: UUID,
    body: TransitionRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_coach(db, assignment_id, auth)
    state.pause(assignment, body.reason)
    return await _saved(db, assignment)


@router.post("/{assignment_id}/resume", response_model=AssignmentEnvelope)
@require_permission(Permission.MANAGE_ASSIGNMENT)
async def resume_assignment(
    assignment_id: UUID,
    body: TransitionRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_coach(db, assignment_id, auth)
    state.resume(assignment, body.reason)
    return await _saved(db, assignment)


@router.post("/{assignment_id}/complete", response_model=AssignmentEnvelope)
@require_permission(Permission.MANAGE_ASSIGNMENT)
async def complete_assignment(
    assignment_id: UUID,
    body: TransitionRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_coach(db, assignment_id, auth)
    state.complete(assignment, body.reason, completed_by=auth.user.id)
    return await _saved(db, assignment)


@router.post("/{assignment_id}/terminate", response_model=AssignmentEnvelope)
@require_permission(Permission.MANAGE_ASSIGNMENT)
async def terminate_assignment(
    assignment_id: UUID,
    body: TerminateRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_coach(db, assignment_id, auth)
    state.terminate(assignment, body.reason, terminated_by=auth.user.id)
    return await _saved(db, assignment)


# =============================================================================
# Progress
# =============================================================================

@router.post("/{assignment_id}/sessions", response_model=AssignmentEnvelope)
@require_permission(Permission.MANAGE_ASSIGNMENT)
async def add_session(
    assignment_id: UUID,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_coach(db, assignment_id, auth)
    state.increment_session_count(assignment)
    return await _saved(db, assignment)


@router.post("/{assignment_id}/sessions/complete", response_model=AssignmentEnvelope)
@require_permission(Permission.MANAGE_ASSIGNMENT)
async def complete_session(
    assignment_id: UUID,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_coach(db, assignment_id, auth)
    state.complete_session(assignment)
    return await _saved(db, assignment)


@router.post("/{assignment_id}/notes", response_model=AssignmentEnvelope)
async def add_note(
    assignment_id: UUID,
    body: NoteRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_party(db, assignment_id, auth)
    state.add_note(assignment, body.note, author=auth.user.username)
    return await _saved(db, assignment)


@router.put("/{assignment_id}/preferences", response_model=AssignmentEnvelope)
@require_permission(Permission.MANAGE_ASSIGNMENT)
async def set_preference(
    assignment_id: UUID,
    body: KeyValueRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_coach(db, assignment_id, auth)
    state.set_preference(assignment, body.key, body.value)
    return await _saved(db, assignment)


@router.put("/{assignment_id}/goals", response_model=AssignmentEnvelope)
@require_permission(Permission.MANAGE_ASSIGNMENT)
async def set_goal(
    assignment_id: UUID,
    body: KeyValueRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load_as_coach(db, assignment_id, auth)
    state.set_goal(assignment, body.key, body.value)
    return await _saved(db, assignment)


@router.put("/{assignment_id}/rating", response_model=AssignmentEnvelope)
@require_permission(Permission.RATE_ASSIGNMENT)
async def rate_assignment(
    assignment_id: UUID,
    body: RatingRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _load(db, assignment_id)
    if not _is_admin(auth) and auth.user.id != assignment.trainee_id:
        raise _forbidden("Only the trainee can rate this assignment")

    state.set_satisfaction_rating(assignment, body.rating, body.feedback)
    return await _saved(db, assignment)


@coaches_router.get("/{coach_id}/workload", response_model=WorkloadResponse)
@require_permission(Permission.VIEW_WORKLOAD)
async def coach_workload(
    coach_id: UUID,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not _is_admin(auth) and auth.user.id != coach_id:
        raise _forbidden("Coaches can only view their own workload")

    workload = await assignment_service.get_coach_workload(db, coach_id)
    return WorkloadResponse.from_workload(coach_id, workload)
