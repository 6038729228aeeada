"""Account registration, login and the bootstrap admin."""

import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.models.user import User
from marketplace.schemas import RegisterRequest, UserType
from marketplace.services.referrals import unique_referral_code
from marketplace.services.security import hash_password, verify_password

logger = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    return (await db.execute(
        select(User).where(User.email == email.strip().lower())
    )).scalar_one_or_none()


async def register_user(db: AsyncSession, data: RegisterRequest) -> User:
    if data.user_type == UserType.ADMIN:
        raise HTTPException(status_code=403, detail="Admin accounts cannot be self-registered")
    if await get_user_by_email(db, data.email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        email=data.email.strip().lower(),
        full_name=data.full_name,
        password_hash=hash_password(data.password),
        user_type=data.user_type.value,
        phone=data.phone,
        points=0,
        referral_code=await unique_referral_code(db),
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")
    await db.refresh(user)
    logger.info("Registered %s account %s", user.user_type, user.id)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")
    return user


async def seed_admin(db: AsyncSession) -> None:
    """Create the admin account from ADMIN_EMAIL / ADMIN_PASSWORD if missing."""
    if not settings.admin_email or not settings.admin_password:
        logger.warning("ADMIN_EMAIL/ADMIN_PASSWORD not set; no admin account seeded")
        return
    if await get_user_by_email(db, settings.admin_email):
        return
    db.add(User(
        email=settings.admin_email.strip().lower(),
        full_name="Administrator",
        password_hash=hash_password(settings.admin_password),
        user_type=UserType.ADMIN.value,
        points=0,
        referral_code=await unique_referral_code(db),
        is_active=True,
    ))
    await db.commit()
    logger.info("Seeded admin account %s", settings.admin_email)


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    if len(local) <= 2:
        masked = local[:1] + "*" * max(len(local) - 1, 1)
    else:
        masked = local[:2] + "*" * (len(local) - 2)
    return f"{masked}@{domain}"
