"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Every table is keyed by a UUID and stamps `created_at`, which is the
default sort key for paginated listings. Join tables carry a unique
constraint on their pair of references.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectStatus(str, Enum):
    """Lifecycle state of a project; the value is what gets stored."""
    PENDING = "pendiente"
    APPROVED = "aprobado"
    REJECTED = "rechazado"
    IN_PROGRESS = "en progreso"
    COMPLETED = "completado"

    def can_transition_to(self, target: "ProjectStatus") -> bool:
        return target in STATUS_TRANSITIONS[self]


STATUS_TRANSITIONS = {
    ProjectStatus.PENDING: {ProjectStatus.APPROVED, ProjectStatus.REJECTED},
    ProjectStatus.REJECTED: {ProjectStatus.PENDING},
    ProjectStatus.APPROVED: {ProjectStatus.IN_PROGRESS},
    ProjectStatus.IN_PROGRESS: {ProjectStatus.COMPLETED},
    ProjectStatus.COMPLETED: set(),
}


class Role(SQLModel, table=True):
    """A named role such as ADMIN, TEACHER or USER."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Permission(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class RolePermission(SQLModel, table=True):
    """Grant of a `Permission` to a `Role`."""
    __table_args__ = (UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),)
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    role_id: uuid.UUID = Field(foreign_key="role.id", index=True)
    permission_id: uuid.UUID = Field(foreign_key="permission.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    permission: Optional[Permission] = Relationship()


class Career(SQLModel, table=True):
    """Academic program a user or project belongs to."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Period(SQLModel, table=True):
    """Academic term, e.g. `2025-2026`. Not yet referenced by projects."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique, always stored lower-cased
    - `password_hash`: hashed password string (never store plaintext)
    - `reset_token` / `reset_token_expiry`: set together by a password
      reset request and cleared together when the token is redeemed
    - `must_change_password`: set on admin-issued accounts
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(index=True, unique=True, nullable=False)
    password_hash: str
    name: str
    role_id: uuid.UUID = Field(foreign_key="role.id", index=True)
    career_id: Optional[uuid.UUID] = Field(default=None, foreign_key="career.id")
    image: Optional[str] = None
    reset_token: Optional[str] = Field(default=None, index=True)
    reset_token_expiry: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    must_change_password: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    role: Optional[Role] = Relationship()
    career: Optional[Career] = Relationship()


class Skill(SQLModel, table=True):
    """A tag or technology that can be attached to projects.

    `details` is free-form JSON, typically `{"category": ..., "level": ...}`.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: Optional[str] = None
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Project(SQLModel, table=True):
    """A student/teacher project or thesis."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    description: str
    status: ProjectStatus = Field(
        default=ProjectStatus.PENDING,
        sa_column=Column(
            SAEnum(
                ProjectStatus,
                values_callable=lambda members: [m.value for m in members],
                native_enum=False,
                length=20,
                name="project_status",
            ),
            nullable=False,
            index=True,
        ),
    )
    problems: Optional[str] = None
    summary: Optional[str] = None
    cycle: Optional[str] = None
    academic_period: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    objectives: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    deliverables: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    career_id: uuid.UUID = Field(foreign_key="career.id", index=True)
    created_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    creator: Optional[User] = Relationship()
    career: Optional[Career] = Relationship()


class ProjectSkill(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("project_id", "skill_id", name="uq_project_skill"),)
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="project.id", index=True)
    skill_id: uuid.UUID = Field(foreign_key="skill.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class UserProject(SQLModel, table=True):
    """Participation of a user in a project."""
    __table_args__ = (UniqueConstraint("user_id", "project_id", name="uq_user_project"),)
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    project_id: uuid.UUID = Field(foreign_key="project.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
