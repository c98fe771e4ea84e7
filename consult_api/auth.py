import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError
from passlib.context import CryptContext

from config import settings
from errors import RoleRequired
from models import Role

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The caller, as described by the claims of their access token."""

    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: Dict[str, Any] = {"userId": user_id, "role": role, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    try:
        return Principal(user_id=int(payload["userId"]), role=str(payload["role"]))
    except (KeyError, TypeError, ValueError):
        raise PyJWTError("token is missing userId or role")


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_access_token(credentials.credentials)
    except PyJWTError as exc:
        logger.warning("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


def require_role(*roles: Role):
    allowed = {r.value for r in roles}

    def checker(principal: Principal = Depends(get_current_user)) -> Principal:
        if principal.role not in allowed:
            raise RoleRequired(
                f"Requires role: {', '.join(sorted(allowed))}",
                details={"role": principal.role},
            )
        return principal

    return checker


require_admin = require_role(Role.ADMIN)
require_consultant = require_role(Role.CONSULTANT)
