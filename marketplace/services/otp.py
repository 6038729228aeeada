"""
OTP Service: password-reset codes and reset tokens.

Security:
  - 4-digit numeric codes
  - Hashed with bcrypt before storage
  - Max 3 verification attempts
  - Stored in Redis with a 15-minute TTL
  - A verified OTP is exchanged for a reset token valid for 1 hour
"""

import secrets
import bcrypt
import redis.asyncio as aioredis

from marketplace.config import settings

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Singleton Redis connection."""
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _redis


def _otp_key(user_id: str) -> str:
    return f"otp:password_reset:{user_id}"


def _token_key(user_id: str) -> str:
    return f"reset_token:{user_id}"


async def generate_otp(user_id: str) -> str:
    """
    Generate a 4-digit OTP and store its bcrypt hash in Redis.

    Returns:
        Plaintext OTP (to send to the user by email)
    """
    otp = f"{secrets.randbelow(10000):04d}"
    otp_hash = bcrypt.hashpw(otp.encode(), bcrypt.gensalt()).decode()

    r = await get_redis()
    key = _otp_key(user_id)

    await r.hset(key, mapping={
        "hash": otp_hash,
        "attempts": "0",
    })
    await r.expire(key, settings.otp_ttl_seconds)

    return otp


async def verify_otp(user_id: str, provided_otp: str) -> dict:
    """
    Verify an OTP against the stored hash.

    Returns:
        {"valid": True} on success
        {"valid": False, "error": "...", "remaining": N} on failure
    """
    r = await get_redis()
    key = _otp_key(user_id)

    data = await r.hgetall(key)
    if not data:
        return {"valid": False, "error": "OTP expired. Please request a new one.", "remaining": 0}

    max_attempts = settings.otp_max_attempts
    attempts = int(data.get("attempts", 0))
    if attempts >= max_attempts:
        return {"valid": False, "error": "Too many attempts. Request a new code.", "remaining": 0}

    await r.hincrby(key, "attempts", 1)

    if bcrypt.checkpw(provided_otp.encode(), data["hash"].encode()):
        await r.delete(key)  # single use
        return {"valid": True}

    remaining = max(max_attempts - attempts - 1, 0)
    return {
        "valid": False,
        "error": f"Incorrect OTP. {remaining} attempts remaining.",
        "remaining": remaining,
    }


async def issue_reset_token(user_id: str) -> str:
    token = secrets.token_urlsafe(32)
    r = await get_redis()
    await r.set(_token_key(user_id), token, ex=settings.reset_token_ttl_seconds)
    return token


async def consume_reset_token(user_id: str, token: str) -> bool:
    """Check the reset token and invalidate it on a match."""
    r = await get_redis()
    key = _token_key(user_id)
    stored = await r.get(key)
    if not stored or not secrets.compare_digest(stored, token):
        return False
    await r.delete(key)
    return True
