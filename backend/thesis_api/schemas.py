"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Output schemas read straight from the
SQLModel rows (`from_attributes`) and never expose password hashes or
reset tokens.
"""

import math
import re
import uuid
from datetime import date, datetime, timezone
from typing import Annotated, Any, Generic, List, Literal, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

T = TypeVar("T")

SYMBOL_RE = re.compile(r"[^A-Za-z0-9]")


# --- pagination -------------------------------------------------------------

class PaginationParams(BaseModel):
    """Query parameters shared by every list endpoint.

    `limit` has no upper bound; clients fetch "everything" with a large
    value such as `limit=1000`.
    """
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    order: Literal["asc", "desc"] = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PageMeta(BaseModel):
    total: int
    pagination: PaginationParams
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, total: int, pagination: PaginationParams) -> "PageMeta":
        total_pages = math.ceil(total / pagination.limit) if total else 0
        return cls(
            total=total,
            pagination=pagination,
            total_pages=total_pages,
            has_next_page=pagination.page < total_pages,
            has_previous_page=pagination.page > 1,
        )


class Page(BaseModel, Generic[T]):
    """Paginated response envelope: `{data, meta}`."""
    data: List[T]
    meta: PageMeta


# --- validators -------------------------------------------------------------

def check_password_strength(value: str) -> str:
    """Require at least 6 characters with lower, upper, digit and symbol."""
    if len(value) < 6:
        raise ValueError("password must be at least 6 characters long")
    if not any(c.islower() for c in value) or not any(c.isupper() for c in value):
        raise ValueError("password must mix upper and lower case letters")
    if not any(c.isdigit() for c in value):
        raise ValueError("password must contain a number")
    if not SYMBOL_RE.search(value):
        raise ValueError("password must contain a symbol")
    return value


def check_project_year(value: Optional[date]) -> Optional[date]:
    """Project dates must fall in the previous, current or next year."""
    if value is None:
        return value
    current = datetime.now(timezone.utc).year
    if not (current - 1 <= value.year <= current + 1):
        raise ValueError(
            f"date must be in {current - 1}, {current} or {current + 1}"
        )
    return value


StrongPassword = Annotated[str, AfterValidator(check_password_strength)]
ProjectDate = Annotated[Optional[date], AfterValidator(check_project_year)]


# --- auth ---------------------------------------------------------------------

class UserCreate(BaseModel):
    """Payload for self-registration and admin user creation.

    `role_id` is accepted but ignored by public registration.
    """
    email: EmailStr
    password: StrongPassword
    name: str = Field(min_length=1)
    role_id: Optional[uuid.UUID] = None
    career_id: Optional[uuid.UUID] = None


class TeacherCreate(BaseModel):
    """Admin-issued account: role and career are mandatory."""
    email: EmailStr
    password: StrongPassword
    name: str = Field(min_length=1)
    role_id: uuid.UUID
    career_id: uuid.UUID


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshIn(BaseModel):
    refresh_token: str = Field(min_length=1)


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ResetPasswordIn(BaseModel):
    password: StrongPassword


class TokenPair(BaseModel):
    """Login/refresh response containing both tokens."""
    user_id: uuid.UUID
    role: Optional[str]
    name: str
    access_token: str
    refresh_token: str


class MessageOut(BaseModel):
    message: str


# --- reference data ---------------------------------------------------------

class RoleIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    name: str
    description: Optional[str] = None


class PermissionIn(RoleIn):
    pass


class PermissionUpdate(RoleUpdate):
    pass


class PermissionOut(RoleOut):
    pass


class RolePermissionIn(BaseModel):
    role_id: uuid.UUID
    permission_id: uuid.UUID


class RolePermissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    role_id: uuid.UUID
    permission_id: uuid.UUID


class CareerIn(BaseModel):
    name: str = Field(min_length=1)


class CareerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)


class CareerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    name: str
    created_at: datetime


class PeriodIn(BaseModel):
    name: str = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class PeriodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    name: str
    created_at: datetime


# --- users ------------------------------------------------------------------

class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[StrongPassword] = None
    name: Optional[str] = Field(default=None, min_length=1)
    role_id: Optional[uuid.UUID] = None
    career_id: Optional[uuid.UUID] = None


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    name: str
    email: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    email: str
    name: str
    role_id: uuid.UUID
    career_id: Optional[uuid.UUID] = None
    image: Optional[str] = None
    must_change_password: bool = False
    created_at: datetime
    role: Optional[RoleOut] = None


class MeOut(UserOut):
    """Current user plus the permission names linked to their role."""
    permissions: List[str] = Field(default_factory=list)


class RegisterOut(BaseModel):
    user: UserOut
    token: str


# --- skills -----------------------------------------------------------------

class SkillCreate(BaseModel):
    """`created_by_id` is ignored; the creator is always the caller."""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_by_id: Optional[uuid.UUID] = None


class SkillUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class SkillOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_by_id: Optional[uuid.UUID] = None
    created_at: datetime


# --- projects ---------------------------------------------------------------

class _ProjectDates(BaseModel):
    start_date: ProjectDate = None
    end_date: ProjectDate = None

    @model_validator(mode="after")
    def check_order(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ProjectCreate(_ProjectDates):
    """Client payload for a new project.

    `status` and `created_by_id` are accepted for compatibility but the
    server always stores a pending project created by the caller.
    """
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    status: Optional[str] = None
    problems: Optional[str] = None
    summary: Optional[str] = None
    objectives: List[str] = Field(default_factory=list)
    deliverables: List[str] = Field(default_factory=list)
    cycle: Optional[str] = None
    academic_period: Optional[str] = None
    career_id: uuid.UUID
    created_by_id: Optional[uuid.UUID] = None


class ProjectUpdate(_ProjectDates):
    """Partial update. When `skills` is present (even empty) it replaces
    the project's whole skill set."""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    status: Optional[str] = None
    problems: Optional[str] = None
    summary: Optional[str] = None
    objectives: Optional[List[str]] = None
    deliverables: Optional[List[str]] = None
    cycle: Optional[str] = None
    academic_period: Optional[str] = None
    career_id: Optional[uuid.UUID] = None
    skills: Optional[List[uuid.UUID]] = None


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    name: str
    description: str
    status: str
    problems: Optional[str] = None
    summary: Optional[str] = None
    cycle: Optional[str] = None
    academic_period: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    objectives: List[str] = Field(default_factory=list)
    deliverables: List[str] = Field(default_factory=list)
    career_id: uuid.UUID
    created_by_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    creator: Optional[UserSummary] = None

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, value):
        return getattr(value, "value", value)


class ProjectDetailOut(ProjectOut):
    career: Optional[CareerOut] = None
    skills: List[SkillOut] = Field(default_factory=list)
    participants: List[UserSummary] = Field(default_factory=list)


class ProjectSkillIn(BaseModel):
    project_id: uuid.UUID
    skill_id: uuid.UUID


class ProjectSkillOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    project_id: uuid.UUID
    skill_id: uuid.UUID


class UserProjectIn(BaseModel):
    user_id: uuid.UUID
    project_id: uuid.UUID


class UserProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    user_id: uuid.UUID
    project_id: uuid.UUID
