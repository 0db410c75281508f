"""
Steady Vitality - Coach/Trainee Assignment Model

A coaching relationship between two distinct users. Status moves through
a small state machine (see assignments.state); rows are never deleted,
only terminated.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Enum as SQLEnum, Float, Text
from sqlmodel import Field, SQLModel

from steady_vitality.auth.models import utcnow


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class AssignmentType(str, Enum):
    PERSONAL_TRAINING = "personal_training"
    NUTRITION_COACHING = "nutrition_coaching"
    FULL_PROGRAM = "full_program"
    CONSULTATION = "consultation"


class CoachTraineeAssignment(SQLModel, table=True):
    """
    Coach/trainee relationship.

    Attributes:
        coach_id / trainee_id: The two parties (distinct users, cascade delete)
        status: Current state; ``is_active`` mirrors status == active
        assigned_at / paused_at / resumed_at / ended_at: Lifecycle timestamps
        notes: Append-only log, one entry per line
        total_sessions / completed_sessions: Progress counters
        satisfaction_rating: 1.00 - 5.00, set by the trainee
        preferences / goals: Free-form key/value maps
    """
    __tablename__ = "coach_trainee_assignments"
    __table_args__ = (
        CheckConstraint("coach_id != trainee_id", name="ck_assignment_distinct_parties"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    coach_id: UUID = Field(
        foreign_key="users.id",
        ondelete="CASCADE",
        nullable=False,
        index=True,
    )
    trainee_id: UUID = Field(
        foreign_key="users.id",
        ondelete="CASCADE",
        nullable=False,
        index=True,
    )
    status: AssignmentStatus = Field(
        default=AssignmentStatus.ACTIVE,
        sa_column=Column(
            SQLEnum(AssignmentStatus),
            nullable=False,
            default=AssignmentStatus.ACTIVE,
            index=True,
        ),
    )
    assignment_type: AssignmentType = Field(
        default=AssignmentType.FULL_PROGRAM,
        sa_column=Column(
            SQLEnum(AssignmentType),
            nullable=False,
            default=AssignmentType.FULL_PROGRAM,
        ),
    )
    assigned_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, index=True),
    )
    paused_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    resumed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    ended_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True, index=True),
    )
    is_active: bool = Field(default=True, index=True)

    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    assignment_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    termination_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    assigned_by: Optional[UUID] = Field(default=None)
    terminated_by: Optional[UUID] = Field(default=None)

    total_sessions: int = Field(default=0)
    completed_sessions: int = Field(default=0)
    last_interaction_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )

    satisfaction_rating: Optional[float] = Field(
        default=None,
        sa_column=Column(Float, nullable=True),
    )
    client_feedback: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    coach_feedback: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    preferences: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    goals: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )
