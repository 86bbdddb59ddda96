"""Authorization decisions shared by every service.

`Authorizer.authorize(user, action, resource)` is the single place that
answers "may this user do that to this record". The rule set:

- administrators (any role whose name contains "admin", case-insensitive)
  may do everything;
- anyone may read;
- any authenticated user may create;
- update and delete require ownership (`resource.created_by_id`).

The role is resolved from the database for every request because JWTs
only carry the user id.
"""

import logging
from enum import Enum
from typing import List, Optional

from sqlmodel import Session, select

from . import models
from .errors import ForbiddenError

logger = logging.getLogger("thesis_api.authorization")


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Authorizer:
    def __init__(self, session: Session):
        self.session = session

    def role_name(self, user: models.User) -> str:
        role = user.role or self.session.get(models.Role, user.role_id)
        return role.name if role else ""

    def is_admin(self, user: Optional[models.User]) -> bool:
        if user is None:
            return False
        return "admin" in self.role_name(user).lower()

    def is_owner(self, user: models.User, resource) -> bool:
        owner_id = getattr(resource, "created_by_id", None)
        return owner_id is not None and owner_id == user.id

    def authorize(self, user: Optional[models.User], action: Action, resource=None) -> bool:
        if action == Action.READ:
            return True
        if user is None:
            return False
        if self.is_admin(user):
            return True
        if action == Action.CREATE:
            return True
        return resource is not None and self.is_owner(user, resource)

    def require(self, user: Optional[models.User], action: Action, resource=None, message: str = None):
        """Raise `ForbiddenError` unless `authorize` allows the action."""
        if not self.authorize(user, action, resource):
            logger.warning(
                "forbidden action=%s resource=%s id=%s user=%s",
                action.value,
                type(resource).__name__ if resource is not None else "-",
                getattr(resource, "id", "-"),
                getattr(user, "id", "anonymous"),
            )
            raise ForbiddenError(message or f"not allowed to {action.value} this record")

    def require_admin(self, user: Optional[models.User], message: str = None):
        if not self.is_admin(user):
            logger.warning("admin required user=%s", getattr(user, "id", "anonymous"))
            raise ForbiddenError(message or "administrator role required")

    def granted_permissions(self, user: models.User) -> List[str]:
        """Names of the permissions linked to the user's role.

        Informational only: no decision above consults this list.
        """
        stmt = (
            select(models.Permission.name)
            .join(models.RolePermission, models.RolePermission.permission_id == models.Permission.id)
            .where(models.RolePermission.role_id == user.role_id)
            .order_by(models.Permission.name)
        )
        return list(self.session.exec(stmt).all())
