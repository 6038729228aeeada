"""Tests for the password-reset OTP service (mocked Redis)."""

import pytest
import bcrypt
from unittest.mock import AsyncMock, patch


@pytest.mark.asyncio
async def test_otp_format():
    """Generated OTP should be a 4-digit string."""
    with patch("marketplace.services.otp.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_get_redis.return_value = mock_conn

        from marketplace.services.otp import generate_otp
        code = await generate_otp("user-1")
        assert len(code) == 4
        assert code.isdigit()


@pytest.mark.asyncio
async def test_otp_stored_in_redis():
    """OTP hash should be stored via Redis hset with a 15-minute TTL."""
    with patch("marketplace.services.otp.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_get_redis.return_value = mock_conn

        from marketplace.services.otp import generate_otp
        code = await generate_otp("user-1")

        key, = mock_conn.hset.call_args.args
        stored = mock_conn.hset.call_args.kwargs["mapping"]
        assert key == "otp:password_reset:user-1"
        assert stored["attempts"] == "0"
        assert bcrypt.checkpw(code.encode(), stored["hash"].encode())
        mock_conn.expire.assert_called_once_with(key, 900)


@pytest.mark.asyncio
async def test_otp_verify_success():
    """Correct OTP should verify and be deleted."""
    from marketplace.services.otp import verify_otp

    otp_hash = bcrypt.hashpw(b"1234", bcrypt.gensalt()).decode()

    with patch("marketplace.services.otp.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_get_redis.return_value = mock_conn
        mock_conn.hgetall.return_value = {"hash": otp_hash, "attempts": "0"}

        result = await verify_otp("user-1", "1234")
        assert result["valid"] is True
        mock_conn.delete.assert_called_once()


@pytest.mark.asyncio
async def test_otp_verify_wrong_code():
    """Wrong OTP should fail and report remaining attempts."""
    from marketplace.services.otp import verify_otp

    otp_hash = bcrypt.hashpw(b"1234", bcrypt.gensalt()).decode()

    with patch("marketplace.services.otp.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_get_redis.return_value = mock_conn
        mock_conn.hgetall.return_value = {"hash": otp_hash, "attempts": "1"}

        result = await verify_otp("user-1", "0000")
        assert result["valid"] is False
        assert "Incorrect OTP" in result["error"]
        assert result["remaining"] == 1


@pytest.mark.asyncio
async def test_otp_expired_and_locked():
    from marketplace.services.otp import verify_otp

    with patch("marketplace.services.otp.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_get_redis.return_value = mock_conn

        mock_conn.hgetall.return_value = {}
        result = await verify_otp("user-1", "1234")
        assert result["valid"] is False
        assert "expired" in result["error"]

        mock_conn.hgetall.return_value = {"hash": "x", "attempts": "3"}
        result = await verify_otp("user-1", "1234")
        assert result["valid"] is False
        assert "Too many attempts" in result["error"]
        mock_conn.hincrby.assert_not_called()


@pytest.mark.asyncio
async def test_reset_token_single_use():
    from marketplace.services.otp import issue_reset_token, consume_reset_token

    with patch("marketplace.services.otp.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_get_redis.return_value = mock_conn

        token = await issue_reset_token("user-1")
        mock_conn.set.assert_called_once_with("reset_token:user-1", token, ex=3600)

        mock_conn.get.return_value = token
        assert await consume_reset_token("user-1", token) is True
        mock_conn.delete.assert_called_once_with("reset_token:user-1")

        mock_conn.get.return_value = None
        assert await consume_reset_token("user-1", token) is False


@pytest.mark.asyncio
async def test_reset_token_mismatch():
    from marketplace.services.otp import consume_reset_token

    with patch("marketplace.services.otp.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_get_redis.return_value = mock_conn
        mock_conn.get.return_value = "the-real-token"

        assert await consume_reset_token("user-1", "forged") is False
        mock_conn.delete.assert_not_called()
