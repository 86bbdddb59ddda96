"""Idempotent seeding of roles, permissions and the first administrator.

Registration needs the USER role to exist, so a fresh database must be
seeded once before the API accepts sign-ups. Running the seed again only
adds what is missing.
"""

import logging
from typing import Dict, Optional

from sqlmodel import Session

from . import models, repositories
from .services import hash_password

logger = logging.getLogger("thesis_api.seed")

DEFAULT_ROLE_PERMISSIONS = {
    "ADMIN": ["manage_users", "read_projects", "write_projects"],
    "TEACHER": ["read_projects", "write_projects"],
    "USER": ["read_projects"],
}


def seed_roles(session: Session, role_permissions: Dict[str, list] = None) -> Dict[str, models.Role]:
    """Create missing roles, permissions and their links; return roles by name."""
    role_permissions = role_permissions or DEFAULT_ROLE_PERMISSIONS
    role_repo = repositories.RoleRepository(session)
    permission_repo = repositories.PermissionRepository(session)
    link_repo = repositories.RolePermissionRepository(session)

    permissions = {}
    for names in role_permissions.values():
        for name in names:
            if name in permissions:
                continue
            permission = permission_repo.first(models.Permission.name == name)
            if not permission:
                permission = permission_repo.create(models.Permission(name=name))
                logger.info("permission_seeded name=%s", name)
            permissions[name] = permission

    roles = {}
    for role_name, names in role_permissions.items():
        role = role_repo.get_by_name(role_name)
        if not role:
            role = role_repo.create(models.Role(name=role_name))
            logger.info("role_seeded name=%s", role_name)
        roles[role_name] = role
        for name in names:
            if not link_repo.get_pair(role.id, permissions[name].id):
                link_repo.create(models.RolePermission(role_id=role.id, permission_id=permissions[name].id))
    return roles


def ensure_admin(session: Session, email: str, password: str, name: str = "Administrador") -> Optional[models.User]:
    """Create an ADMIN account unless the email is already registered."""
    user_repo = repositories.UserRepository(session)
    if user_repo.get_by_email(email):
        logger.info("admin_exists email=%s", email.lower())
        return None
    role = repositories.RoleRepository(session).get_by_name("ADMIN")
    if not role:
        role = seed_roles(session)["ADMIN"]
    user = user_repo.create(
        models.User(
            email=email.lower(),
            password_hash=hash_password(password),
            name=name,
            role_id=role.id,
            must_change_password=True,
        )
    )
    logger.info("admin_seeded id=%s", user.id)
    return user
