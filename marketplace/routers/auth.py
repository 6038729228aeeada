"""Registration, login and the password-reset flow."""

import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.database import get_db
from marketplace.models.user import User
from marketplace.schemas import (
    Envelope, envelope, RegisterRequest, LoginRequest, TokenResponse,
    ForgotPasswordRequest, VerifyOTPRequest, ResetPasswordRequest,
)
from marketplace.services import otp
from marketplace.services.accounts import register_user, authenticate, get_user_by_email, mask_email
from marketplace.services.mailer import send_otp_email
from marketplace.services.security import create_access_token, hash_password

router = APIRouter()
logger = logging.getLogger(__name__)


def _token(user: User) -> dict:
    return {
        "access_token": create_access_token(user),
        "token_type": "bearer",
        "user_id": user.id,
        "user_type": user.user_type,
    }


@router.post("/register", response_model=Envelope[TokenResponse], status_code=201)
async def register(data: RegisterRequest, db: AsyncSession = Depends(get_db)):
    user = await register_user(db, data)
    return envelope("Registration successful", _token(user), status=201)


@router.post("/login", response_model=Envelope[TokenResponse])
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await authenticate(db, data.email, data.password)
    return envelope("Login successful", _token(user))


# ── Password Reset ─────────────────────────────────────────

@router.post("/forgot-password", response_model=Envelope[dict])
async def forgot_password(data: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Email a 4-digit reset code to the account owner."""
    user = await get_user_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=404, detail="No account found with this email")

    code = await otp.generate_otp(str(user.id))
    if not await send_otp_email(user.email, code):
        logger.warning("Reset OTP for user %s could not be emailed", user.id)

    return envelope("OTP sent to your email", {
        "email": mask_email(user.email),
        "userId": str(user.id),
    })


@router.post("/verify-otp", response_model=Envelope[dict])
async def verify_otp(data: VerifyOTPRequest):
    result = await otp.verify_otp(str(data.user_id), data.otp)
    if not result["valid"]:
        raise HTTPException(status_code=400, detail=result["error"])

    token = await otp.issue_reset_token(str(data.user_id))
    return envelope("OTP verified", {"resetToken": token})


@router.post("/reset-password", response_model=Envelope[None])
async def reset_password(data: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    user = (await db.execute(select(User).where(User.id == data.user_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if not await otp.consume_reset_token(str(data.user_id), data.reset_token):
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user.password_hash = hash_password(data.new_password)
    await db.commit()
    logger.info("Password reset for user %s", user.id)
    return envelope("Password reset successfully")
