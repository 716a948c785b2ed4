from __future__ import annotations
import enum
import logging
from datetime import datetime
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .models import AuthSession, AuthUser, UserProfile
from .settings import settings

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"


class InvalidToken(Exception):
    pass


class Forbidden(Exception):
    pass


class Identity:
    def __init__(self, user_id: str, role: Optional[Role]) -> None:
        self.user_id = user_id
        self.role = role

    @property
    def is_teacher(self) -> bool:
        return self.role is Role.TEACHER

    def __repr__(self) -> str:
        return f"Identity(user_id={self.user_id!r}, role={self.role!r})"


def require_role(identity: Identity, *roles: Role) -> Identity:
    if identity.role not in roles:
        raise Forbidden(f"role {identity.role} not in {[r.value for r in roles]}")
    return identity


class IdentityService:
    """Resolves bearer tokens to users and users to roles.

    Tokens are HS256 JWTs carrying the login name in ``sub`` and a session id
    in ``jti``. A token is only honoured while its session row exists, which
    lets a session be revoked before the token expires.
    """

    def __init__(self, db: Session, *, secret_key: Optional[str] = None, algorithm: Optional[str] = None) -> None:
        self.db = db
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm

    def resolve_token(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as exc:
            logger.debug("rejected token: %s", exc)
            raise InvalidToken("could not decode token") from exc
        username = payload.get("sub")
        jti = payload.get("jti")
        if not username or not jti:
            raise InvalidToken("token is missing sub or jti")

        row = self.db.get(AuthSession, jti)
        if row is None or row.username != username:
            logger.debug("no live session %s for %s", jti, username)
            raise InvalidToken("session not found")
        user = self.db.get(AuthUser, username)
        if user is None:
            raise InvalidToken("unknown user")
        row.last_activity_at = datetime.utcnow()
        self.db.add(row)
        self.db.commit()
        return user.user_id

    def lookup_role(self, user_id: str) -> Optional[Role]:
        profile = self.db.get(UserProfile, user_id)
        if profile is None:
            return None
        try:
            return Role(profile.role)
        except ValueError:
            return None

    def identify(self, token: str) -> Identity:
        user_id = self.resolve_token(token)
        return Identity(user_id, self.lookup_role(user_id))
