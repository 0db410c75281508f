"""
Steady Vitality - Assignment Storage

Creation, lookup and aggregate queries for coach/trainee assignments.
State changes themselves live in assignments.state; callers mutate the
record there and persist it with save_assignment.
"""

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.assignments.models import (
    AssignmentStatus,
    AssignmentType,
    CoachTraineeAssignment,
)
from steady_vitality.assignments.state import InvalidAssignmentError
from steady_vitality.auth.models import Role, utcnow
from steady_vitality.auth.users import get_user_by_id
from steady_vitality.log import logger


COACHING_ROLES = (Role.COACH, Role.ADMIN)


@dataclass
class CoachWorkload:
    active_clients: int
    total_clients: int
    average_rating: float
    completion_rate: float


async def create_assignment(
    db: AsyncSession,
    coach_id: UUID,
    trainee_id: UUID,
    assignment_type: AssignmentType = AssignmentType.FULL_PROGRAM,
    assigned_by: Optional[UUID] = None,
    reason: Optional[str] = None,
) -> CoachTraineeAssignment:
    """
    Start an active assignment between two users.

    Raises:
        InvalidAssignmentError: Same user on both sides, a party missing
            or inactive, or the coach lacks a coaching role
    """
    if coach_id == trainee_id:
        raise InvalidAssignmentError("Coach and trainee must be different users")

    coach = await get_user_by_id(db, coach_id)
    if coach is None:
        raise InvalidAssignmentError("Coach not found or inactive")
    if coach.role not in COACHING_ROLES:
        raise InvalidAssignmentError("Assigned coach does not have a coaching role")

    trainee = await get_user_by_id(db, trainee_id)
    if trainee is None:
        raise InvalidAssignmentError("Trainee not found or inactive")

    assignment = CoachTraineeAssignment(
        coach_id=coach_id,
        trainee_id=trainee_id,
        assignment_type=assignment_type,
        status=AssignmentStatus.ACTIVE,
        is_active=True,
        assigned_at=utcnow(),
        assigned_by=assigned_by,
        assignment_reason=reason,
    )
    db.add(assignment)
    await db.commit()

    logger.bind(
        event="assignment.created",
        assignment_id=str(assignment.id),
        coach_id=str(coach_id),
        trainee_id=str(trainee_id),
    ).info("Assignment created")
    return assignment


async def get_assignment(db: AsyncSession, assignment_id: UUID) -> Optional[CoachTraineeAssignment]:
    return await db.get(CoachTraineeAssignment, assignment_id)


async def save_assignment(db: AsyncSession, assignment: CoachTraineeAssignment) -> CoachTraineeAssignment:
    """Persist changes made through assignments.state."""
    assignment.updated_at = utcnow()
    db.add(assignment)
    await db.commit()
    return assignment


async def find_active_assignments(
    db: AsyncSession,
    coach_id: Optional[UUID] = None,
    trainee_id: Optional[UUID] = None,
) -> List[CoachTraineeAssignment]:
    """Active assignments, newest first, optionally narrowed to a party."""
    statement = select(CoachTraineeAssignment).where(
        CoachTraineeAssignment.status == AssignmentStatus.ACTIVE,
        CoachTraineeAssignment.is_active == True,  # noqa: E712
    )
    if coach_id is not None:
        statement = statement.where(CoachTraineeAssignment.coach_id == coach_id)
    if trainee_id is not None:
        statement = statement.where(CoachTraineeAssignment.trainee_id == trainee_id)

    statement = statement.order_by(CoachTraineeAssignment.assigned_at.desc())
    return list((await db.exec(statement)).all())


async def find_by_coach(db: AsyncSession, coach_id: UUID) -> List[CoachTraineeAssignment]:
    statement = (
        select(CoachTraineeAssignment)
        .where(CoachTraineeAssignment.coach_id == coach_id)
        .order_by(CoachTraineeAssignment.assigned_at.desc())
    )
    return list((await db.exec(statement)).all())


async def find_by_trainee(db: AsyncSession, trainee_id: UUID) -> List[CoachTraineeAssignment]:
    statement = (
        select(CoachTraineeAssignment)
        .where(CoachTraineeAssignment.trainee_id == trainee_id)
        .order_by(CoachTraineeAssignment.assigned_at.desc())
    )
    return list((await db.exec(statement)).all())


async def is_coach_of(db: AsyncSession, coach_id: UUID, trainee_id: UUID) -> bool:
    """True if ``coach_id`` has an active assignment with ``trainee_id``."""
    return bool(await find_active_assignments(db, coach_id=coach_id, trainee_id=trainee_id))


async def get_coach_workload(db: AsyncSession, coach_id: UUID) -> CoachWorkload:
    """
    Aggregate a coach's assignments.

    average_rating covers rated assignments only; completion_rate is
    completed over total sessions across every assignment, as a percentage.
    Both are 0 when there is nothing to average.
    """
    assignments = await find_by_coach(db, coach_id)

    active = [a for a in assignments if a.status == AssignmentStatus.ACTIVE]
    ratings = [a.satisfaction_rating for a in assignments if a.satisfaction_rating]
    total_sessions = sum(a.total_sessions for a in assignments)
    completed_sessions = sum(a.completed_sessions for a in assignments)

    return CoachWorkload(
        active_clients=len(active),
        total_clients=len(assignments),
        average_rating=sum(ratings) / len(ratings) if ratings else 0.0,
        completion_rate=(
            completed_sessions / total_sessions * 100 if total_sessions else 0.0
        ),
    )
