from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from bsi_telemetry.db.models import ROLES, User
from bsi_telemetry.services.activity_service import ActivityService
from bsi_telemetry.services.auth_service import AuthService
from bsi_telemetry.services.exceptions import Conflict, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8

# camelCase request keys -> model attributes
UPDATABLE_FIELDS = {
    "email": "email",
    "firstName": "first_name",
    "lastName": "last_name",
    "role": "role",
    "isActive": "is_active",
    "password": "password",
}
PRIVILEGED_FIELDS = frozenset({"role", "isActive"})


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _check_email(email: str) -> str:
    if not EMAIL_RE.match(email):
        raise ValidationFailed("Invalid email format")
    return email


def _check_password(password: str) -> str:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return password


def _check_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationFailed("Invalid role. Must be admin, manager, or viewer")
    return role


class UserService:
    def __init__(self, auth: AuthService, activity: ActivityService) -> None:
        self._auth = auth
        self._activity = activity

    def get(self, db: Session, user_id: int) -> User:
        user = db.get(User, int(user_id))
        if user is None:
            raise NotFound("User not found")
        return user

    def list_users(self, db: Session) -> List[User]:
        return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()

    def create(
        self,
        db: Session,
        *,
        actor_id: int,
        client_ip: Optional[str],
        username: Any,
        email: Any,
        password: Any,
        role: Any = None,
        first_name: Any = None,
        last_name: Any = None,
    ) -> User:
        username = _clean(username)
        email = _clean(email)
        password = password if isinstance(password, str) and password else None
        if not username or not email or not password:
            raise ValidationFailed("Username, email, and password are required")
        _check_email(email)
        _check_password(password)
        role = _check_role(_clean(role) or "viewer")

        clash = (
            db.query(User.id)
            .filter(or_(func.lower(User.username) == username.lower(), func.lower(User.email) == email.lower()))
            .first()
        )
        if clash is not None:
            raise Conflict("Username or email already exists", code="DUPLICATE_USER")

        user = User(
            username=username,
            email=email,
            password_hash=self._auth.hash_password(password),
            role=role,
            first_name=_clean(first_name),
            last_name=_clean(last_name),
            is_active=True,
            access_all_nodes=False,
            created_by=actor_id,
        )
        try:
            db.add(user)
            db.flush()
            self._activity.record(
                db,
                action="CREATE_USER",
                user_id=actor_id,
                client_ip=client_ip,
                resource="users",
                details={"newUserId": user.id, "username": username, "role": role},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(user)
        logger.info("User '%s' created with role %s by user_id=%s", username, role, actor_id)
        return user

    def update(
        self,
        db: Session,
        *,
        actor_id: int,
        client_ip: Optional[str],
        user_id: int,
        changes: Dict[str, Any],
    ) -> User:
        """Apply a partial update.

        Role gates (who may touch role/isActive) are enforced by the caller;
        this only validates values.
        """
        user = self.get(db, user_id)
        applied: List[str] = []

        for key, value in (changes or {}).items():
            if key not in UPDATABLE_FIELDS:
                continue
            if key == "email":
                email = _clean(value)
                if not email:
                    continue
                _check_email(email)
                clash = (
                    db.query(User.id)
                    .filter(func.lower(User.email) == email.lower(), User.id != user.id)
                    .first()
                )
                if clash is not None:
                    raise Conflict("Email already exists", code="DUPLICATE_USER")
                user.email = email
            elif key in ("firstName", "lastName"):
                setattr(user, UPDATABLE_FIELDS[key], _clean(value))
            elif key == "role":
                role = _clean(value)
                if not role:
                    continue
                user.role = _check_role(role)
            elif key == "isActive":
                if not isinstance(value, bool):
                    raise ValidationFailed("isActive must be a boolean value")
                user.is_active = value
            elif key == "password":
                if not value:
                    continue
                user.password_hash = self._auth.hash_password(_check_password(str(value)))
            applied.append(key)

        if not applied:
            raise ValidationFailed("No fields to update")

        try:
            db.add(user)
            self._activity.record(
                db,
                action="UPDATE_USER",
                user_id=actor_id,
                client_ip=client_ip,
                resource="users",
                details={"targetUserId": user.id, "updates": applied},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(user)
        return user

    def delete(self, db: Session, *, actor_id: int, client_ip: Optional[str], user_id: int) -> None:
        if int(user_id) == int(actor_id):
            raise ValidationFailed("Cannot delete your own account")
        user = self.get(db, user_id)
        username = user.username
        try:
            db.delete(user)
            self._activity.record(
                db,
                action="DELETE_USER",
                user_id=actor_id,
                client_ip=client_ip,
                resource="users",
                details={"deletedUserId": int(user_id), "username": username},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("User '%s' deleted by user_id=%s", username, actor_id)
