"""Authentication context extraction, token issuance and credential checks."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

import bcrypt
import jwt
from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import AuthenticationError
from app.db.dependencies import get_db_session
from app.models.entities import RoleType, User

BCRYPT_MAX_BYTES = 72


class AppRole(str, Enum):
    """Closed set of caller roles; every policy branch must handle all four."""

    SUPER_ADMIN = "super_admin"
    TEAM_LEADER = "team_leader"
    EMPLOYEE = "employee"
    GUEST = "guest"


ROLE_TYPE_TO_APP_ROLE: dict[RoleType, AppRole] = {
    RoleType.SUPER_ADMIN: AppRole.SUPER_ADMIN,
    RoleType.TEAM_LEADER: AppRole.TEAM_LEADER,
    RoleType.EMPLOYEE: AppRole.EMPLOYEE,
    RoleType.GUEST: AppRole.GUEST,
}


APP_ROLE_TO_DB_ROLE: dict[AppRole, RoleType] = {
    AppRole.SUPER_ADMIN: RoleType.SUPER_ADMIN,
    AppRole.TEAM_LEADER: RoleType.TEAM_LEADER,
    AppRole.EMPLOYEE: RoleType.EMPLOYEE,
    AppRole.GUEST: RoleType.GUEST,
}


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated caller resolved from the bearer token and current DB state."""

    user_id: str
    role: AppRole
    team_id: str | None = None
    project_id: str | None = None
    email: str = ""
    name: str = ""

    @property
    def is_super_admin(self) -> bool:
        return self.role is AppRole.SUPER_ADMIN

    @property
    def is_team_leader(self) -> bool:
        return self.role is AppRole.TEAM_LEADER

    @property
    def is_guest(self) -> bool:
        return self.role is AppRole.GUEST


def context_for_user(user: User) -> RequestUserContext:
    """Build caller context from a persisted user row."""

    role = ROLE_TYPE_TO_APP_ROLE[user.role]
    return RequestUserContext(
        user_id=user.id,
        role=role,
        team_id=user.team_id if role in (AppRole.TEAM_LEADER, AppRole.EMPLOYEE) else None,
        project_id=user.project_id if role is AppRole.GUEST else None,
        email=user.email,
        name=user.full_name,
    )


# ---------- Credentials ----------
def hash_credential(credential: str) -> str:
    """Return a bcrypt hash of the first 72 bytes of ``credential``."""

    salt = bcrypt.gensalt(rounds=get_settings().credential_hash_rounds)
    return bcrypt.hashpw(credential.encode()[:BCRYPT_MAX_BYTES], salt).decode()


def verify_credential(credential: str, stored: str) -> bool:
    try:
        return bcrypt.checkpw(credential.encode()[:BCRYPT_MAX_BYTES], stored.encode())
    except ValueError:
        return False


def generate_temporary_credential() -> str:
    return secrets.token_urlsafe(get_settings().temporary_credential_length)


# ---------- Tokens ----------
def issue_token(user: User) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user.id,
        "role": ROLE_TYPE_TO_APP_ROLE[user.role].value,
        "team_id": user.team_id,
        "project_id": user.project_id,
        "iat": now,
        "exp": now + timedelta(minutes=settings.auth_token_ttl_minutes),
    }
    return jwt.encode(claims, settings.auth_token_secret, algorithm=settings.auth_token_algorithm)


def decode_token(token: str) -> dict[str, object]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.auth_token_secret, algorithms=[settings.auth_token_algorithm])
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Not authorized, token failed.") from exc


def authenticate(db: Session, *, email: str, credential: str) -> User:
    """Check email/credential; disabled accounts fail exactly like a bad password."""

    user = db.scalar(select(User).where(User.email == email.strip().lower()))
    if user is None or user.disabled or not verify_credential(credential, user.credential_hash):
        raise AuthenticationError("Invalid email or password.")
    return user


def _extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Not authorized, malformed authorization header.")
    return token.strip()


def get_current_user_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve the caller from a bearer token.

    Role, team and project come from the current user row, not from the token claims,
    so a demotion or a disabled flag takes effect on the next request.
    """

    settings = get_settings()
    token = _extract_bearer(authorization)
    if token is None:
        if not settings.auth_allow_dev_principal:
            raise AuthenticationError("Not authorized, no token provided.")
        user = db.scalar(select(User).where(User.email == settings.auth_dev_user_email.strip().lower()))
    else:
        claims = decode_token(token)
        user = db.get(User, str(claims.get("sub")))

    if user is None or user.disabled:
        raise AuthenticationError("Not authorized, user is unknown or disabled.")
    return context_for_user(user)
