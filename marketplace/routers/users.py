"""Account profile and referral endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.database import get_db
from marketplace.models.user import User
from marketplace.schemas import Envelope, envelope, UserResponse
from marketplace.schemas.rewards import ReferralApply, ReferralResult, ReferralSummary
from marketplace.services.referrals import apply_referral_code, referral_summary
from marketplace.services.security import get_current_user

router = APIRouter()


@router.get("/me", response_model=Envelope[UserResponse])
async def get_me(user: User = Depends(get_current_user)):
    return envelope("Profile retrieved", user)


# ── Referrals ──────────────────────────────────────────────

@router.post("/referrals/apply", response_model=Envelope[ReferralResult])
async def apply_referral(
    data: ReferralApply,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await apply_referral_code(db, user, data.referral_code)
    return envelope("Referral code applied", result)


@router.get("/referrals/summary", response_model=Envelope[ReferralSummary])
async def get_referral_summary(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Referral summary retrieved", await referral_summary(db, user))
