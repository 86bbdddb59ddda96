"""Business logic services used by HTTP controllers.

This module holds the service classes that coordinate repositories,
the `Authorizer` and auxiliary helpers. Services validate domain rules,
translate store errors into the `errors` taxonomy and persist aggregates
via repositories. They never raise `HTTPException`; controllers do not
need to know about status codes.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import jwt
from passlib.context import CryptContext
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories, schemas
from .authorization import Action, Authorizer
from .config import settings
from .database import atomic
from .errors import (
    AppError,
    BadForeignKeyError,
    ConfigurationError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
    classify_integrity_error,
    from_integrity_error,
)
from .utils.mailer import Mailer
from .utils.uploads import delete_avatar, save_avatar

logger = logging.getLogger("thesis_api.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

DEFAULT_ROLE = "USER"
LEGACY_DEFAULT_ROLE = "user"
INVALID_CREDENTIALS = "invalid email or password"
INVALID_REFRESH = "token expired or invalid"
RESET_REQUESTED = "if the email is registered, a recovery link has been sent"


def hash_password(password: str) -> str:
    return PWD_CTX.hash(password)


def issue_token(user_id: uuid.UUID, expires: timedelta) -> str:
    """Sign a JWT whose only claim besides the timestamps is the user id."""
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + expires).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def access_token_for(user_id: uuid.UUID) -> str:
    return issue_token(user_id, timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS))


def refresh_token_for(user_id: uuid.UUID) -> str:
    return issue_token(user_id, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def is_email_domain_allowed(email: str) -> bool:
    domain = email.rsplit("@", 1)[-1].lower()
    return domain in settings.ALLOWED_EMAIL_DOMAINS or any(
        domain.endswith(suffix) for suffix in settings.ALLOWED_EMAIL_SUFFIXES
    )


def _drop_nulls(changes: dict, *keys: str) -> dict:
    # these columns are NOT NULL; an explicit null in a PATCH means "leave it"
    for key in keys:
        if key in changes and changes[key] is None:
            del changes[key]
    return changes


def _referenced(exc: IntegrityError, message: str) -> AppError:
    """Map an integrity error raised by a DELETE: the row is still in use."""
    if classify_integrity_error(exc) == "foreign_key":
        return ConflictError(message)
    return from_integrity_error(exc)


class AuthService:
    """Registration, login, token refresh and password recovery."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.role_repo = repositories.RoleRepository(session)
        self.career_repo = repositories.CareerRepository(session)

    def register(self, data: schemas.UserCreate) -> Tuple[models.User, str]:
        """Self-service registration.

        Any client supplied role is ignored: the account always gets the
        default reader role. Returns the user and an access token.
        """
        email = data.email.lower()
        if not is_email_domain_allowed(email):
            raise InvalidInputError("email domain is not allowed")
        role = self.role_repo.get_by_name(DEFAULT_ROLE, LEGACY_DEFAULT_ROLE)
        if not role:
            logger.error("default role %r is missing; run the seed", DEFAULT_ROLE)
            raise ConfigurationError(f"default role '{DEFAULT_ROLE}' does not exist")
        user = models.User(
            email=email,
            password_hash=hash_password(data.password),
            name=data.name,
            role_id=role.id,
            career_id=data.career_id,
        )
        user = self._insert_user(user)
        logger.info("user_registered id=%s role=%s", user.id, role.name)
        return user, access_token_for(user.id)

    def register_with_role(self, data: schemas.TeacherCreate) -> models.User:
        """Create an account with an explicit role and career (admin only).

        The account is flagged so the holder knows to change the password
        chosen by the administrator.
        """
        if not self.role_repo.get(data.role_id):
            raise BadForeignKeyError("role does not exist")
        if not self.career_repo.get(data.career_id):
            raise BadForeignKeyError("career does not exist")
        user = models.User(
            email=data.email.lower(),
            password_hash=hash_password(data.password),
            name=data.name,
            role_id=data.role_id,
            career_id=data.career_id,
            must_change_password=True,
        )
        user = self._insert_user(user)
        logger.info("user_issued id=%s role_id=%s", user.id, user.role_id)
        return user

    def _insert_user(self, user: models.User) -> models.User:
        try:
            return self.user_repo.create(user)
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(
                exc, conflict="email already registered", foreign_key="role or career does not exist"
            )

    def login(self, data: schemas.LoginIn) -> dict:
        """Check credentials and return both tokens plus display data.

        Unknown email and wrong password fail with the same message.
        """
        user = self.user_repo.get_by_email(data.email)
        if not user:
            PWD_CTX.dummy_verify()
            logger.info("login_failed reason=unknown_email")
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not PWD_CTX.verify(data.password, user.password_hash):
            logger.info("login_failed reason=bad_password user=%s", user.id)
            raise UnauthorizedError(INVALID_CREDENTIALS)
        return self._token_pair(user)

    def refresh(self, refresh_token: str) -> dict:
        """Re-issue both tokens from a valid refresh token.

        Every failure (bad signature, expiry, malformed payload, deleted
        user) is reported the same way.
        """
        try:
            payload = jwt.decode(refresh_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
            user_id = uuid.UUID(str(payload["user_id"]))
        except (jwt.PyJWTError, KeyError, ValueError):
            raise UnauthorizedError(INVALID_REFRESH)
        user = self.user_repo.get(user_id)
        if not user:
            raise UnauthorizedError(INVALID_REFRESH)
        return self._token_pair(user)

    def _token_pair(self, user: models.User) -> dict:
        return {
            "user_id": user.id,
            "role": user.role.name if user.role else None,
            "name": user.name,
            "access_token": access_token_for(user.id),
            "refresh_token": refresh_token_for(user.id),
        }

    def forgot_password(self, email: str, mailer: Mailer) -> str:
        """Issue a one-hour reset token and email the recovery link.

        The token is committed before the email is attempted, so a delivery
        failure (raised as `DeliveryError`) leaves a usable token behind.
        Unknown emails get the same answer as known ones.
        """
        user = self.user_repo.get_by_email(email)
        if not user:
            logger.info("password_reset_requested unknown_email")
            return RESET_REQUESTED
        token = secrets.token_hex(32)
        expiry = models.utcnow() + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        self.user_repo.update(user, {"reset_token": token, "reset_token_expiry": expiry})
        logger.info("password_reset_issued user=%s", user.id)
        mailer.send_password_reset(user.email, user.name, f"{settings.FRONTEND_URL}/reset-password/{token}")
        return RESET_REQUESTED

    def reset_password(self, token: str, new_password: str) -> str:
        """Redeem a reset token. Tokens are single use."""
        user = self.user_repo.get_by_reset_token(token, models.utcnow())
        if not user:
            raise InvalidInputError("the reset link is invalid or has expired")
        # conditional on the token so two concurrent redemptions cannot both win
        stmt = (
            update(models.User)
            .where(models.User.id == user.id, models.User.reset_token == token)
            .values(
                password_hash=hash_password(new_password),
                reset_token=None,
                reset_token_expiry=None,
                must_change_password=False,
            )
        )
        result = self.session.exec(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            raise InvalidInputError("the reset link is invalid or has expired")
        self.session.commit()
        logger.info("password_reset_completed user=%s", user.id)
        return "password updated"


class UserService:
    def __init__(self, session: Session, authorizer: Authorizer = None):
        self.session = session
        self.authorizer = authorizer or Authorizer(session)
        self.repo = repositories.UserRepository(session)
        self.role_repo = repositories.RoleRepository(session)

    def find_all(self, pagination: schemas.PaginationParams):
        return self.repo.find_many_paginated(pagination)

    def find_one(self, user_id: uuid.UUID) -> models.User:
        user = self.repo.get(user_id)
        if not user:
            raise NotFoundError(f"user {user_id} not found")
        return user

    def create(self, data: schemas.UserCreate, caller: models.User) -> models.User:
        """Admin creation of a user; defaults to the reader role."""
        self.authorizer.require_admin(caller)
        role_id = data.role_id
        if role_id is None:
            role = self.role_repo.get_by_name(DEFAULT_ROLE, LEGACY_DEFAULT_ROLE)
            if not role:
                raise ConfigurationError(f"default role '{DEFAULT_ROLE}' does not exist")
            role_id = role.id
        user = models.User(
            email=data.email.lower(),
            password_hash=hash_password(data.password),
            name=data.name,
            role_id=role_id,
            career_id=data.career_id,
        )
        try:
            return self.repo.create(user)
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(
                exc, conflict="email already registered", foreign_key="role or career does not exist"
            )

    def _require_self_or_admin(self, user: models.User, caller: models.User):
        if caller.id != user.id and not self.authorizer.is_admin(caller):
            raise ForbiddenError("you can only modify your own account")

    def update(self, user_id: uuid.UUID, data: schemas.UserUpdate, caller: models.User) -> models.User:
        user = self.find_one(user_id)
        self._require_self_or_admin(user, caller)
        changes = _drop_nulls(data.model_dump(exclude_unset=True), "email", "name", "role_id", "password")
        if "role_id" in changes and changes["role_id"] != user.role_id:
            self.authorizer.require_admin(caller, "only administrators can change roles")
        if "email" in changes:
            changes["email"] = changes["email"].lower()
        if "password" in changes:
            changes["password_hash"] = hash_password(changes.pop("password"))
            if caller.id == user.id:
                changes["must_change_password"] = False
        try:
            return self.repo.update(user, changes)
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(
                exc, conflict="email already registered", foreign_key="role or career does not exist"
            )

    def update_image(self, user_id: uuid.UUID, payload: bytes, caller: models.User) -> models.User:
        user = self.find_one(user_id)
        self._require_self_or_admin(user, caller)
        previous = user.image
        user = self.repo.update(user, {"image": save_avatar(payload)})
        delete_avatar(previous)
        logger.info("avatar_updated user=%s", user.id)
        return user

    def remove(self, user_id: uuid.UUID, caller: models.User) -> models.User:
        self.authorizer.require_admin(caller)
        user = self.find_one(user_id)
        try:
            self.repo.remove(user)
        except IntegrityError as exc:
            self.session.rollback()
            raise _referenced(exc, "user still owns or participates in projects or skills")
        delete_avatar(user.image)
        logger.info("user_deleted id=%s by=%s", user_id, caller.id)
        return user


@dataclass
class ProjectDetail:
    project: models.Project
    skills: List[models.Skill] = field(default_factory=list)
    participants: List[models.User] = field(default_factory=list)


class ProjectService:
    """Projects with two-tier visibility and owner-or-admin mutation."""
    def __init__(self, session: Session, authorizer: Authorizer = None):
        self.session = session
        self.authorizer = authorizer or Authorizer(session)
        self.repo = repositories.ProjectRepository(session)
        self.skill_repo = repositories.SkillRepository(session)
        self.user_repo = repositories.UserRepository(session)
        self.project_skill_repo = repositories.ProjectSkillRepository(session)
        self.user_project_repo = repositories.UserProjectRepository(session)

    def visibility_clause(self, user: Optional[models.User]):
        """SQL filter on `Project` for what `user` may see; None means unrestricted.

        Anonymous callers and admins see everything. Everyone else sees
        non-pending projects plus their own pending ones.
        """
        if user is None or self.authorizer.is_admin(user):
            return None
        return or_(
            models.Project.status != models.ProjectStatus.PENDING,
            models.Project.created_by_id == user.id,
        )

    def is_visible(self, project: models.Project, user: Optional[models.User]) -> bool:
        if user is None or project.status != models.ProjectStatus.PENDING:
            return True
        return project.created_by_id == user.id or self.authorizer.is_admin(user)

    def get_or_404(self, project_id: uuid.UUID, user: Optional[models.User] = None) -> models.Project:
        """Return the project, answering 404 when it is missing or hidden from `user`."""
        project = self.repo.get(project_id)
        if not project or not self.is_visible(project, user):
            raise NotFoundError(f"project {project_id} not found")
        return project

    def find_all(self, pagination: schemas.PaginationParams, user: Optional[models.User] = None):
        clause = self.visibility_clause(user)
        filters = [clause] if clause is not None else []
        return self.repo.find_many_paginated(pagination, *filters)

    def find_one(self, project_id: uuid.UUID, user: Optional[models.User] = None) -> ProjectDetail:
        project = self.get_or_404(project_id, user)
        return ProjectDetail(
            project=project,
            skills=self.skill_repo.list_for_project(project.id),
            participants=self.user_repo.list_for_project(project.id),
        )

    def find_by_skill(self, skill_id: uuid.UUID, user: Optional[models.User] = None) -> List[models.Project]:
        if not self.skill_repo.get(skill_id):
            raise NotFoundError(f"skill {skill_id} not found")
        clause = self.visibility_clause(user)
        filters = [clause] if clause is not None else []
        return self.repo.list_by_skill(skill_id, *filters)

    def create_with_user(self, data: schemas.ProjectCreate, user: models.User) -> models.Project:
        """Create a pending project owned by `user` and enrol them in it.

        Status and creator sent by the client are ignored.
        """
        payload = data.model_dump(exclude={"status", "created_by_id"})
        project = models.Project(**payload, status=models.ProjectStatus.PENDING, created_by_id=user.id)
        try:
            with atomic(self.session):
                self.session.add(project)
                self.session.flush()
                self.session.add(models.UserProject(user_id=user.id, project_id=project.id))
        except IntegrityError as exc:
            raise from_integrity_error(exc, foreign_key="career does not exist")
        self.session.refresh(project)
        logger.info("project_created id=%s by=%s", project.id, user.id)
        return project

    def _resolve_status(self, project: models.Project, raw: Optional[str], user: models.User):
        if raw is None:
            return None
        try:
            target = models.ProjectStatus(raw)
        except ValueError:
            allowed = ", ".join(s.value for s in models.ProjectStatus)
            raise InvalidInputError(f"unknown status '{raw}'; expected one of: {allowed}")
        current = models.ProjectStatus(project.status)
        if target == current or self.authorizer.is_admin(user):
            return target
        if current == models.ProjectStatus.PENDING:
            raise ForbiddenError("only an administrator can approve or reject a pending project")
        if not current.can_transition_to(target):
            raise InvalidInputError(f"cannot move a project from '{current.value}' to '{target.value}'")
        return target

    def update_with_permission(self, project_id: uuid.UUID, data: schemas.ProjectUpdate, user: models.User) -> models.Project:
        """Apply a partial update; owner or admin only.

        A `skills` list replaces the whole skill set. The link rewrite and
        the field update commit together, bounded by
        `settings.TRANSACTION_TIMEOUT_SECONDS`.
        """
        project = self.get_or_404(project_id, user)
        self.authorizer.require(user, Action.UPDATE, project, "only the creator or an administrator can edit this project")

        changes = _drop_nulls(
            data.model_dump(exclude_unset=True),
            "name", "description", "career_id", "objectives", "deliverables",
        )
        skill_ids = changes.pop("skills", None)
        status = self._resolve_status(project, changes.pop("status", None), user)
        if status is not None:
            changes["status"] = status
        if skill_ids is not None:
            skill_ids = list(dict.fromkeys(skill_ids))
            missing = self.skill_repo.missing_ids(skill_ids)
            if missing:
                raise BadForeignKeyError("unknown skill ids: " + ", ".join(str(s) for s in missing))

        try:
            with atomic(self.session, timeout_seconds=settings.TRANSACTION_TIMEOUT_SECONDS):
                if skill_ids is not None:
                    self.project_skill_repo.replace_for_project(project.id, skill_ids)
                for key, value in changes.items():
                    setattr(project, key, value)
                project.updated_at = models.utcnow()
                self.session.add(project)
        except IntegrityError as exc:
            raise from_integrity_error(exc, foreign_key="referenced career or skill does not exist")
        self.session.refresh(project)
        if skill_ids is not None:
            logger.info("project_skills_synced id=%s count=%d", project.id, len(skill_ids))
        logger.info("project_updated id=%s by=%s fields=%s", project.id, user.id, sorted(changes))
        return project

    def remove(self, project_id: uuid.UUID, user: models.User) -> models.Project:
        """Delete a project after its skill and participant links."""
        project = self.get_or_404(project_id, user)
        self.authorizer.require(user, Action.DELETE, project, "only the creator or an administrator can delete this project")
        with atomic(self.session):
            self.project_skill_repo.delete_for_project(project.id)
            self.user_project_repo.delete_for_project(project.id)
            self.session.delete(project)
        logger.info("project_deleted id=%s by=%s", project_id, user.id)
        return project


class SkillService:
    def __init__(self, session: Session, authorizer: Authorizer = None):
        self.session = session
        self.authorizer = authorizer or Authorizer(session)
        self.repo = repositories.SkillRepository(session)
        self.project_skill_repo = repositories.ProjectSkillRepository(session)

    def find_all(self, pagination: schemas.PaginationParams):
        return self.repo.find_many_paginated(pagination)

    def find_one(self, skill_id: uuid.UUID) -> models.Skill:
        skill = self.repo.get(skill_id)
        if not skill:
            raise NotFoundError(f"skill {skill_id} not found")
        return skill

    def find_by_project(self, project_id: uuid.UUID, user: Optional[models.User] = None) -> List[models.Skill]:
        ProjectService(self.session, self.authorizer).get_or_404(project_id, user)
        return self.repo.list_for_project(project_id)

    def create_with_user(self, data: schemas.SkillCreate, user: models.User) -> models.Skill:
        skill = models.Skill(
            name=data.name,
            description=data.description,
            details=data.details,
            created_by_id=user.id,
        )
        try:
            skill = self.repo.create(skill)
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(exc, conflict="skill already exists")
        logger.info("skill_created id=%s by=%s", skill.id, user.id)
        return skill

    def update_with_permission(self, skill_id: uuid.UUID, data: schemas.SkillUpdate, user: models.User) -> models.Skill:
        skill = self.find_one(skill_id)
        self.authorizer.require(user, Action.UPDATE, skill, "you are not allowed to edit this skill")
        changes = _drop_nulls(data.model_dump(exclude_unset=True), "name")
        try:
            return self.repo.update(skill, changes)
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(exc, conflict="skill already exists")

    def remove(self, skill_id: uuid.UUID, user: models.User) -> models.Skill:
        """Delete a skill after detaching it from every project."""
        skill = self.find_one(skill_id)
        self.authorizer.require(user, Action.DELETE, skill, "you are not allowed to delete this skill")
        with atomic(self.session):
            self.project_skill_repo.delete_for_skill(skill.id)
            self.session.delete(skill)
        logger.info("skill_deleted id=%s by=%s", skill_id, user.id)
        return skill


class _ProjectLinkService:
    """Shared rules for the project join tables (skills, participants).

    Linking and unlinking require the right to edit the project. A
    duplicate pair is rejected before the insert; a concurrent insert
    that slips past the check still ends up as a conflict.
    """
    repo_class = None
    duplicate_message = "link already exists"

    def __init__(self, session: Session, authorizer: Authorizer = None):
        self.session = session
        self.authorizer = authorizer or Authorizer(session)
        self.repo = self.repo_class(session)
        self.project_repo = repositories.ProjectRepository(session)

    def find_all(self, pagination: schemas.PaginationParams, user: Optional[models.User] = None):
        """Page through links whose project `user` is allowed to see."""
        clause = ProjectService(self.session, self.authorizer).visibility_clause(user)
        if clause is None:
            return self.repo.find_many_paginated(pagination)
        join = (models.Project, models.Project.id == self.repo.model.project_id)
        return self.repo.find_many_paginated(pagination, clause, join=join)

    def _project_for_edit(self, project_id: uuid.UUID, user: models.User) -> models.Project:
        project = self.project_repo.get(project_id)
        if not project:
            raise BadForeignKeyError("project does not exist")
        self.authorizer.require(user, Action.UPDATE, project, "only the creator or an administrator can change this project")
        return project

    def _insert(self, link):
        try:
            return self.repo.create(link)
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(exc, conflict=self.duplicate_message)

    def remove(self, link_id: uuid.UUID, user: models.User):
        link = self.repo.get(link_id)
        if not link:
            raise NotFoundError(f"link {link_id} not found")
        self._project_for_edit(link.project_id, user)
        return self.repo.remove(link)


class ProjectSkillService(_ProjectLinkService):
    repo_class = repositories.ProjectSkillRepository
    duplicate_message = "this skill is already assigned to this project"

    def create(self, data: schemas.ProjectSkillIn, user: models.User) -> models.ProjectSkill:
        self._project_for_edit(data.project_id, user)
        if not self.session.get(models.Skill, data.skill_id):
            raise BadForeignKeyError("skill does not exist")
        if self.repo.get_pair(data.project_id, data.skill_id):
            raise ConflictError(self.duplicate_message)
        return self._insert(models.ProjectSkill(project_id=data.project_id, skill_id=data.skill_id))


class UserProjectService(_ProjectLinkService):
    repo_class = repositories.UserProjectRepository
    duplicate_message = "this user already participates in this project"

    def create(self, data: schemas.UserProjectIn, user: models.User) -> models.UserProject:
        self._project_for_edit(data.project_id, user)
        if not self.session.get(models.User, data.user_id):
            raise BadForeignKeyError("user does not exist")
        if self.repo.get_pair(data.user_id, data.project_id):
            raise ConflictError(self.duplicate_message)
        return self._insert(models.UserProject(user_id=data.user_id, project_id=data.project_id))


class ReferenceDataService:
    """Plain CRUD for lookup tables (careers, roles, permissions)."""
    repo_class = None
    label = "record"
    admin_only = False

    def __init__(self, session: Session, authorizer: Authorizer = None):
        self.session = session
        self.authorizer = authorizer or Authorizer(session)
        self.repo = self.repo_class(session)

    def _check_caller(self, caller: models.User):
        if self.admin_only:
            self.authorizer.require_admin(caller)

    def find_all(self, pagination: schemas.PaginationParams):
        return self.repo.find_many_paginated(pagination)

    def find_one(self, record_id: uuid.UUID):
        record = self.repo.get(record_id)
        if not record:
            raise NotFoundError(f"{self.label} {record_id} not found")
        return record

    def create(self, data, caller: models.User):
        self._check_caller(caller)
        try:
            record = self.repo.create(self.repo.model(**data.model_dump()))
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(exc, conflict=f"{self.label} already exists")
        logger.info("%s_created id=%s by=%s", self.label, record.id, caller.id)
        return record

    def update(self, record_id: uuid.UUID, data, caller: models.User):
        self._check_caller(caller)
        record = self.find_one(record_id)
        changes = _drop_nulls(data.model_dump(exclude_unset=True), "name")
        try:
            return self.repo.update(record, changes)
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(exc, conflict=f"{self.label} already exists")

    def remove(self, record_id: uuid.UUID, caller: models.User):
        self._check_caller(caller)
        record = self.find_one(record_id)
        try:
            self.repo.remove(record)
        except IntegrityError as exc:
            self.session.rollback()
            raise _referenced(exc, f"{self.label} is still in use")
        logger.info("%s_deleted id=%s by=%s", self.label, record_id, caller.id)
        return record


class CareerService(ReferenceDataService):
    repo_class = repositories.CareerRepository
    label = "career"


class RoleService(ReferenceDataService):
    repo_class = repositories.RoleRepository
    label = "role"
    admin_only = True


class PermissionService(ReferenceDataService):
    repo_class = repositories.PermissionRepository
    label = "permission"
    admin_only = True


class RolePermissionService:
    def __init__(self, session: Session, authorizer: Authorizer = None):
        self.session = session
        self.authorizer = authorizer or Authorizer(session)
        self.repo = repositories.RolePermissionRepository(session)

    def find_all(self, pagination: schemas.PaginationParams, caller: models.User):
        self.authorizer.require_admin(caller)
        return self.repo.find_many_paginated(pagination)

    def create(self, data: schemas.RolePermissionIn, caller: models.User) -> models.RolePermission:
        self.authorizer.require_admin(caller)
        if self.repo.get_pair(data.role_id, data.permission_id):
            raise ConflictError("permission already granted to this role")
        try:
            return self.repo.create(models.RolePermission(role_id=data.role_id, permission_id=data.permission_id))
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(
                exc, conflict="permission already granted to this role", foreign_key="role or permission does not exist"
            )

    def remove(self, link_id: uuid.UUID, caller: models.User) -> models.RolePermission:
        self.authorizer.require_admin(caller)
        link = self.repo.get(link_id)
        if not link:
            raise NotFoundError(f"role permission {link_id} not found")
        return self.repo.remove(link)


class PeriodService:
    """Academic periods; names are unique."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.PeriodRepository(session)

    def create(self, data: schemas.PeriodIn) -> models.Period:
        if self.repo.get_by_name(data.name):
            raise ConflictError("period already exists")
        try:
            return self.repo.create(models.Period(name=data.name))
        except IntegrityError as exc:
            self.session.rollback()
            raise from_integrity_error(exc, conflict="period already exists")

    def find_all(self, pagination: schemas.PaginationParams):
        return self.repo.find_many_paginated(pagination)

    def find_one(self, period_id: uuid.UUID) -> models.Period:
        period = self.repo.get(period_id)
        if not period:
            raise NotFoundError(f"period {period_id} not found")
        return period

    def remove(self, period_id: uuid.UUID) -> models.Period:
        return self.repo.remove(self.find_one(period_id))
