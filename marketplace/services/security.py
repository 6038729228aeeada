"""
Password hashing, JWT issue/verify and the bearer-token dependencies.

Tokens carry the claims ``userId``, ``email`` and ``userType``.
"""

import logging
import uuid
from datetime import datetime, timedelta

import bcrypt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.db.database import get_db
from marketplace.models.user import User
from marketplace.schemas import UserType

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def create_access_token(user: User) -> str:
    payload = {
        "userId": str(user.id),
        "email": user.email,
        "userType": user.user_type,
        "exp": datetime.utcnow() + timedelta(minutes=settings.jwt_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise HTTPException(status_code=401, detail="Invalid or expired token") from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    claims = decode_access_token(credentials.credentials)
    try:
        user_id = uuid.UUID(str(claims.get("userId")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.user_type != UserType.ADMIN.value:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_roles(*roles: UserType):
    """Dependency factory restricting an endpoint to the given account types."""
    allowed = {r.value for r in roles}

    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.user_type not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker
