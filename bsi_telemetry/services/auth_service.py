from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Dict

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy.orm import Session

from bsi_telemetry.db.models import User, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: dt.datetime
    expires_in_s: int


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    username: str
    role: str


class AuthError(RuntimeError):
    pass


class InvalidCredentials(AuthError):
    pass


class AccountDisabled(AuthError):
    pass


class InvalidToken(AuthError):
    pass


class TokenExpired(InvalidToken):
    pass


class AuthService:
    """Password verification and session token issue/decode.

    Tokens are stateless HS256 JWTs; logout is recorded but does not revoke.
    """

    def __init__(
        self,
        *,
        jwt_secret_key: str,
        jwt_issuer: str = "bsi_telemetry",
        session_timeout_minutes: int = 30,
    ) -> None:
        if not jwt_secret_key:
            raise ValueError("JWT secret key must be provided via env var JWT_SECRET_KEY")

        self._jwt_secret_key = jwt_secret_key
        self._jwt_issuer = jwt_issuer
        self._ttl_s = max(60, int(session_timeout_minutes) * 60)
        self._hasher = PasswordHasher()

    @property
    def session_ttl_s(self) -> int:
        return self._ttl_s

    def hash_password(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def ensure_initial_admin(self, db: Session, *, username: str, password: str, email: str) -> bool:
        """Create the first admin when the users table is empty.

        Returns True when a user was created.
        """
        if db.query(User).count() > 0:
            return False
        if not password:
            raise RuntimeError("Users table is empty; set INITIAL_ADMIN_PASSWORD to bootstrap an admin")

        db.add(
            User(
                username=username,
                email=email or None,
                password_hash=self.hash_password(password),
                role="admin",
                is_active=True,
                access_all_nodes=True,
            )
        )
        db.commit()
        logger.info("Bootstrapped initial admin user '%s'", username)
        return True

    def authenticate(self, db: Session, *, username: str, password: str) -> User:
        user = db.query(User).filter(User.username == username).one_or_none()
        if user is None or not self.verify_password(password, user.password_hash):
            logger.info("Login failed for username=%s", username)
            raise InvalidCredentials("Invalid credentials")

        # Checked after the password so disabled accounts are not enumerable.
        if not user.is_active:
            logger.info("Login refused for disabled account username=%s", username)
            raise AccountDisabled("Account is disabled")

        user.last_login = utcnow()
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    def issue_token(self, user: User) -> IssuedToken:
        now = utcnow()
        expires = now + dt.timedelta(seconds=self._ttl_s)
        payload: Dict[str, Any] = {
            "iss": self._jwt_issuer,
            "sub": str(user.id),
            "username": user.username,
            "role": user.role,
            "iat": int(now.timestamp()),
            "exp": int(expires.timestamp()),
        }
        token = jwt.encode(payload, self._jwt_secret_key, algorithm="HS256")
        return IssuedToken(token=token, expires_at=expires, expires_in_s=self._ttl_s)

    def decode_token(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret_key,
                algorithms=["HS256"],
                issuer=self._jwt_issuer,
                options={"require": ["exp", "iat", "iss", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired("Token expired") from e
        except jwt.PyJWTError as e:
            raise InvalidToken("Invalid token") from e

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError) as e:
            raise InvalidToken("Invalid token subject") from e

        return TokenClaims(
            user_id=user_id,
            username=str(payload.get("username") or ""),
            role=str(payload.get("role") or ""),
        )
