"""Viewer resolution. Authentication happens upstream; the caller's id
arrives in the ``X-User-Id`` header."""
from typing import Optional

from fastapi import Depends, Header
from sqlmodel import Session

from stemplay.database import get_session
from stemplay.errors import AuthorizationError
from stemplay.models import User


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    session: Session = Depends(get_session),
) -> User:
    if not x_user_id:
        raise AuthorizationError("Missing X-User-Id header", status_code=401)
    user = session.get(User, x_user_id)
    if not user:
        raise AuthorizationError("Unknown user", status_code=401)
    return user


def _require_role(user: User, role: str) -> User:
    if user.role != role:
        raise AuthorizationError(f"{role.capitalize()} role required")
    if not user.class_id:
        raise AuthorizationError(f"No class assigned to this {role}")
    return user


def require_student(user: User = Depends(get_current_user)) -> User:
    return _require_role(user, "student")


def require_teacher(user: User = Depends(get_current_user)) -> User:
    return _require_role(user, "teacher")
