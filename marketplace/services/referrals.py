"""
Referral codes and point accrual.

Every account gets a unique code at registration; applying someone else's
code credits the referrer with ``settings.referral_points``.
"""

import logging
import secrets
import string

from fastapi import HTTPException
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.models.user import User, Referral

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


def generate_referral_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


async def unique_referral_code(db: AsyncSession) -> str:
    while True:
        code = generate_referral_code()
        taken = await db.scalar(select(func.count()).select_from(User).where(User.referral_code == code))
        if not taken:
            return code


async def apply_referral_code(db: AsyncSession, user: User, code: str | None) -> dict:
    code = (code or "").strip().upper()
    if not code:
        raise HTTPException(status_code=400, detail="Referral code is required")

    referrer = (await db.execute(select(User).where(User.referral_code == code))).scalar_one_or_none()
    if not referrer:
        raise HTTPException(status_code=404, detail="Invalid referral code")
    if referrer.id == user.id:
        raise HTTPException(status_code=400, detail="You cannot use your own referral code")

    existing = await db.scalar(
        select(func.count()).select_from(Referral).where(
            Referral.referrer_id == referrer.id,
            Referral.referred_id == user.id,
        )
    )
    if existing:
        raise HTTPException(status_code=409, detail="Referral code already applied")

    points = settings.referral_points
    db.add(Referral(referrer_id=referrer.id, referred_id=user.id, points_awarded=points))
    await db.execute(
        update(User).where(User.id == referrer.id).values(points=User.points + points)
    )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Referral code already applied")

    logger.info("Referral: %s referred %s (+%d points)", referrer.id, user.id, points)
    return {"referrer_name": referrer.full_name, "points_awarded": points}


async def referral_summary(db: AsyncSession, user: User) -> dict:
    count = await db.scalar(
        select(func.count()).select_from(Referral).where(Referral.referrer_id == user.id)
    )
    return {
        "referral_code": user.referral_code,
        "points": user.points,
        "referral_count": count or 0,
    }
