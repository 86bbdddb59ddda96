"""Authentication helpers and FastAPI security dependencies.

This module decodes access tokens and provides two dependencies:
`get_current_user` for endpoints that require a bearer token and
`get_optional_user` for endpoints that also serve anonymous callers.
A token that is present but invalid is rejected by both.
"""

import uuid
from typing import Optional

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import get_session
from .errors import UnauthorizedError

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises `UnauthorizedError`.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("token expired")
    except jwt.PyJWTError:
        raise UnauthorizedError("invalid token")


def _user_from_token(token: str, session: Session) -> models.User:
    payload = decode_token(token)
    try:
        user_id = uuid.UUID(str(payload.get("user_id")))
    except ValueError:
        raise UnauthorizedError("invalid token payload")
    user = repositories.UserRepository(session).get(user_id)
    if not user:
        raise UnauthorizedError("user not found")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    The user is loaded with the request's session so services can use it
    directly. Raises `UnauthorizedError` for any authentication issue.
    """
    if credentials is None:
        raise UnauthorizedError("missing bearer token")
    return _user_from_token(credentials.credentials, session)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> Optional[models.User]:
    """Like `get_current_user` but returns None when no token is sent."""
    if credentials is None:
        return None
    return _user_from_token(credentials.credentials, session)
