"""Repository classes encapsulating database operations.

`CrudRepository` holds the list/get/create/update/delete behaviour every
entity shares; the small subclasses below bind it to a table and add the
queries their service needs. Single-row writes commit immediately. The
bulk helpers (`delete_for_*`, `replace_for_project`) only flush, so the
calling service decides the transaction boundary.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, select

from . import models
from .schemas import PageMeta, PaginationParams

ModelT = TypeVar("ModelT", bound=SQLModel)


@dataclass
class PaginatedResult(Generic[ModelT]):
    data: List[ModelT]
    meta: PageMeta


class CrudRepository(Generic[ModelT]):
    """Generic paginated CRUD over one SQLModel table."""
    model: Type[ModelT]
    sort_column = "created_at"

    def __init__(self, session: Session):
        self.session = session

    def find_many_paginated(self, pagination: PaginationParams = None, *filters, join=None) -> PaginatedResult[ModelT]:
        """Return one page of rows matching `filters`.

        `join` is an optional `(target, onclause)` pair for filters that
        reference another table. Rows are ordered by `sort_column` (ties
        broken by id) in the requested direction. `meta.total` counts all
        matching rows.
        """
        pagination = pagination or PaginationParams()
        stmt = select(self.model)
        if join is not None:
            stmt = stmt.join(*join)
        if filters:
            stmt = stmt.where(*filters)
        total = self.session.exec(select(func.count()).select_from(stmt.subquery())).one()
        column = getattr(self.model, self.sort_column)
        if pagination.order == "asc":
            stmt = stmt.order_by(column.asc(), self.model.id.asc())
        else:
            stmt = stmt.order_by(column.desc(), self.model.id.desc())
        rows = self.session.exec(stmt.offset(pagination.offset).limit(pagination.limit)).all()
        return PaginatedResult(data=list(rows), meta=PageMeta.build(total, pagination))

    def get(self, record_id: uuid.UUID) -> Optional[ModelT]:
        return self.session.get(self.model, record_id)

    def first(self, *filters) -> Optional[ModelT]:
        return self.session.exec(select(self.model).where(*filters)).first()

    def create(self, record: ModelT) -> ModelT:
        """Persist a new row and return the managed instance."""
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def update(self, record: ModelT, changes: Dict[str, Any]) -> ModelT:
        for key, value in changes.items():
            setattr(record, key, value)
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def remove(self, record: ModelT) -> ModelT:
        self.session.delete(record)
        self.session.commit()
        return record


class RoleRepository(CrudRepository[models.Role]):
    model = models.Role

    def get_by_name(self, *names: str) -> Optional[models.Role]:
        """Return the first role matching one of `names`, in that order."""
        for name in names:
            role = self.first(models.Role.name == name)
            if role:
                return role
        return None


class PermissionRepository(CrudRepository[models.Permission]):
    model = models.Permission


class RolePermissionRepository(CrudRepository[models.RolePermission]):
    model = models.RolePermission

    def get_pair(self, role_id: uuid.UUID, permission_id: uuid.UUID) -> Optional[models.RolePermission]:
        return self.first(
            models.RolePermission.role_id == role_id,
            models.RolePermission.permission_id == permission_id,
        )


class CareerRepository(CrudRepository[models.Career]):
    model = models.Career


class PeriodRepository(CrudRepository[models.Period]):
    model = models.Period
    sort_column = "name"

    def get_by_name(self, name: str) -> Optional[models.Period]:
        return self.first(models.Period.name == name)


class UserRepository(CrudRepository[models.User]):
    """CRUD operations for `User` objects."""
    model = models.User

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by (lower-cased) email or `None` if not found."""
        return self.first(models.User.email == email.lower())

    def get_by_reset_token(self, token: str, now) -> Optional[models.User]:
        """Return the user holding `token` if it has not expired yet."""
        return self.first(
            models.User.reset_token == token,
            models.User.reset_token_expiry.is_not(None),
            models.User.reset_token_expiry > now,
        )

    def list_for_project(self, project_id: uuid.UUID) -> List[models.User]:
        stmt = (
            select(models.User)
            .join(models.UserProject, models.UserProject.user_id == models.User.id)
            .where(models.UserProject.project_id == project_id)
            .order_by(models.UserProject.created_at)
        )
        return list(self.session.exec(stmt).all())


class SkillRepository(CrudRepository[models.Skill]):
    model = models.Skill

    def list_for_project(self, project_id: uuid.UUID) -> List[models.Skill]:
        stmt = (
            select(models.Skill)
            .join(models.ProjectSkill, models.ProjectSkill.skill_id == models.Skill.id)
            .where(models.ProjectSkill.project_id == project_id)
            .order_by(models.Skill.name)
        )
        return list(self.session.exec(stmt).all())

    def missing_ids(self, skill_ids: Iterable[uuid.UUID]) -> List[uuid.UUID]:
        """Return the ids in `skill_ids` that have no `Skill` row."""
        wanted = list(skill_ids)
        if not wanted:
            return []
        found = set(self.session.exec(select(models.Skill.id).where(models.Skill.id.in_(wanted))).all())
        return [skill_id for skill_id in wanted if skill_id not in found]


class ProjectRepository(CrudRepository[models.Project]):
    model = models.Project

    def list_by_skill(self, skill_id: uuid.UUID, *filters) -> List[models.Project]:
        stmt = (
            select(models.Project)
            .join(models.ProjectSkill, models.ProjectSkill.project_id == models.Project.id)
            .where(models.ProjectSkill.skill_id == skill_id, *filters)
            .order_by(models.Project.created_at.desc())
        )
        return list(self.session.exec(stmt).all())


class ProjectSkillRepository(CrudRepository[models.ProjectSkill]):
    model = models.ProjectSkill

    def get_pair(self, project_id: uuid.UUID, skill_id: uuid.UUID) -> Optional[models.ProjectSkill]:
        return self.first(
            models.ProjectSkill.project_id == project_id,
            models.ProjectSkill.skill_id == skill_id,
        )

    def delete_for_project(self, project_id: uuid.UUID) -> None:
        self.session.exec(delete(models.ProjectSkill).where(models.ProjectSkill.project_id == project_id))

    def delete_for_skill(self, skill_id: uuid.UUID) -> None:
        self.session.exec(delete(models.ProjectSkill).where(models.ProjectSkill.skill_id == skill_id))

    def replace_for_project(self, project_id: uuid.UUID, skill_ids: List[uuid.UUID]) -> None:
        """Make `skill_ids` the complete skill set of a project.

        Deletes every existing link, then inserts the new set. Inserts skip
        rows that already exist so a concurrent writer adding the same pair
        does not fail the whole replacement. Does not commit.
        """
        self.delete_for_project(project_id)
        if not skill_ids:
            return
        rows = [
            {"id": uuid.uuid4(), "project_id": project_id, "skill_id": skill_id, "created_at": models.utcnow()}
            for skill_id in skill_ids
        ]
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            self._insert_each_skipping_duplicates(rows)
            return
        stmt = insert(models.ProjectSkill).values(rows).on_conflict_do_nothing(
            index_elements=["project_id", "skill_id"]
        )
        self.session.exec(stmt)

    def _insert_each_skipping_duplicates(self, rows: List[dict]) -> None:
        for row in rows:
            try:
                with self.session.begin_nested():
                    self.session.add(models.ProjectSkill(**row))
            except IntegrityError:
                continue


class UserProjectRepository(CrudRepository[models.UserProject]):
    model = models.UserProject

    def get_pair(self, user_id: uuid.UUID, project_id: uuid.UUID) -> Optional[models.UserProject]:
        return self.first(
            models.UserProject.user_id == user_id,
            models.UserProject.project_id == project_id,
        )

    def delete_for_project(self, project_id: uuid.UUID) -> None:
        self.session.exec(delete(models.UserProject).where(models.UserProject.project_id == project_id))
