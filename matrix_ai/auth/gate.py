"""
Access Control Gate
JWT authentication and role-based authorization for every API entry point
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Union
import logging

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from matrix_ai.config.settings import settings
from matrix_ai.core.errors import Forbidden, Unauthenticated
from matrix_ai.db.models.common import User, UserRole
from matrix_ai.db.session import get_db

logger = logging.getLogger(__name__)

RoleLike = Union[UserRole, str]


@dataclass(frozen=True)
class Principal:
    id: str
    username: str
    role: UserRole
    is_active: bool = True

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, username=user.username, role=UserRole(user.role), is_active=user.is_active)


class AccessGate:
    def __init__(self, secret: str, algorithm: str = "HS256", expires_minutes: int = 1440):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_minutes = expires_minutes

    def create_access_token(self, user: User, expires_in: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (expires_in or timedelta(minutes=self.expires_minutes))
        payload = {
            "sub": user.id,
            "username": user.username,
            "role": UserRole(user.role).value,
            "exp": expire,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def authenticate(self, db: Session, token: Optional[str]) -> Principal:
        if not token:
            raise Unauthenticated("Authentication required")

        try:
            payload = jwt.decode(
                token, self.secret, algorithms=[self.algorithm], options={"require": ["sub", "exp"]}
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected malformed token: {e}")
            raise Unauthenticated("Invalid token")

        user = db.get(User, payload["sub"])
        if user is None:
            raise Unauthenticated("User not found or token is invalid")
        if not user.is_active:
            raise Forbidden("Account is deactivated")

        return Principal.from_user(user)

    @staticmethod
    def authorize(principal: Principal, required_roles: Iterable[RoleLike]) -> bool:
        allowed = {UserRole(role) for role in required_roles}
        return principal.role in allowed

    @staticmethod
    def authorize_owner_or_admin(principal: Principal, owner_id: Optional[str]) -> bool:
        return principal.role == UserRole.ADMIN or (owner_id is not None and principal.id == owner_id)


access_gate = AccessGate(
    secret=settings.JWT_SECRET.get_secret_value(),
    algorithm=settings.JWT_ALGORITHM,
    expires_minutes=settings.JWT_EXPIRES_MINUTES,
)

# === FastAPI dependencies ===
security = HTTPBearer(auto_error=False)

def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    db: Session = Depends(get_db),
) -> Principal:
    token = credentials.credentials if credentials and credentials.scheme.lower() == "bearer" else None
    return access_gate.authenticate(db, token)

def require_roles(*roles: RoleLike):
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not access_gate.authorize(principal, roles):
            raise Forbidden("Access denied. Insufficient permissions for this operation.")
        return principal
    return dependency

require_admin = require_roles(UserRole.ADMIN)
require_analyst = require_roles(UserRole.ADMIN, UserRole.ANALYST)
