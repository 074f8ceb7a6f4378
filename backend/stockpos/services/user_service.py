# Overview: Service-layer operations for staff users; attribution and roles only.

from __future__ import annotations

from typing import Optional

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLES


def create_user(*, username: str, email: str, role: str) -> User:
    """
    Create a staff user.

    Raises:
        ValidationError: blank username/email or unknown role
        ConflictError: username already taken
    """
    username = (username or "").strip()
    email = (email or "").strip()
    role = (role or "").strip().lower()

    if not username:
        raise ValidationError("username is required")
    if not email or "@" not in email:
        raise ValidationError("email must be a valid address")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError(f"Username {username} already exists")

    user = User(username=username, email=email, role=role, is_active=True)
    db.session.add(user)
    db.session.flush()
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_users(*, role: Optional[str] = None, active_only: bool = False) -> list[User]:
    query = db.session.query(User)
    if role is not None:
        if role not in ROLES:
            raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
        query = query.filter(User.role == role)
    if active_only:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username.asc()).all()


def set_user_active(*, user_id: int, is_active: bool) -> User:
    user = get_user(user_id)
    user.is_active = is_active
    db.session.flush()
    return user
