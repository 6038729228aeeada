"""Tests for registration, login and the password-reset routes."""

import pytest
from unittest.mock import AsyncMock, patch


class InMemoryRedis:
    """Just enough of redis.asyncio for the OTP service."""

    def __init__(self):
        self.store = {}

    async def hset(self, key, mapping):
        self.store.setdefault(key, {}).update(mapping)

    async def expire(self, key, ttl):
        return True

    async def hgetall(self, key):
        return dict(self.store.get(key, {}))

    async def hincrby(self, key, field, amount=1):
        data = self.store.setdefault(key, {})
        data[field] = str(int(data.get(field, 0)) + amount)
        return int(data[field])

    async def delete(self, key):
        self.store.pop(key, None)

    async def set(self, key, value, ex=None):
        self.store[key] = value

    async def get(self, key):
        return self.store.get(key)


@pytest.mark.asyncio
async def test_register_then_login(client):
    resp = await client.post("/api/auth/register", json={
        "email": "Owner@Example.com",
        "password": "password123",
        "fullName": "Shop Owner",
        "userType": "company",
    })
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["accessToken"]
    assert data["userType"] == "company"

    login = await client.post("/api/auth/login", json={"email": "owner@example.com", "password": "password123"})
    assert login.status_code == 200
    token = login.json()["data"]["accessToken"]

    me = await client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "owner@example.com"
    assert len(me.json()["data"]["referralCode"]) == 8


@pytest.mark.asyncio
async def test_register_rejections(client, factory):
    await factory.user("user", email="taken@example.com")

    dup = await client.post("/api/auth/register", json={
        "email": "taken@example.com", "password": "password123", "fullName": "Again",
    })
    assert dup.status_code == 409

    admin = await client.post("/api/auth/register", json={
        "email": "boss@example.com", "password": "password123", "fullName": "Boss", "userType": "admin",
    })
    assert admin.status_code == 403

    short = await client.post("/api/auth/register", json={
        "email": "short@example.com", "password": "pw", "fullName": "Short",
    })
    assert short.status_code == 422


@pytest.mark.asyncio
async def test_login_wrong_password(client, factory):
    await factory.user("user", email="someone@example.com")
    resp = await client.post("/api/auth/login", json={"email": "someone@example.com", "password": "nope-nope"})
    assert resp.status_code == 401
    assert resp.json()["status"] == 401


@pytest.mark.asyncio
async def test_forgot_password_unknown_email(client):
    resp = await client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_password_reset_flow(client, factory):
    user = await factory.user("company", email="reset.me@example.com")
    redis = InMemoryRedis()

    with patch("marketplace.services.otp.get_redis", AsyncMock(return_value=redis)), \
            patch("marketplace.routers.auth.send_otp_email", AsyncMock(return_value=True)) as mailed:
        forgot = await client.post("/api/auth/forgot-password", json={"email": "reset.me@example.com"})
        assert forgot.status_code == 200
        assert forgot.json()["data"]["email"] == "re******@example.com"
        assert forgot.json()["data"]["userId"] == str(user.id)
        _, code = mailed.call_args.args

        wrong = "0000" if code != "0000" else "1111"
        bad = await client.post("/api/auth/verify-otp", json={"userId": str(user.id), "otp": wrong})
        assert bad.status_code == 400
        assert "Incorrect OTP" in bad.json()["message"]

        ok = await client.post("/api/auth/verify-otp", json={"userId": str(user.id), "otp": code})
        assert ok.status_code == 200
        reset_token = ok.json()["data"]["resetToken"]

        reset = await client.post("/api/auth/reset-password", json={
            "userId": str(user.id), "resetToken": reset_token, "newPassword": "brand-new-pass",
        })
        assert reset.status_code == 200

        reused = await client.post("/api/auth/reset-password", json={
            "userId": str(user.id), "resetToken": reset_token, "newPassword": "another-pass",
        })
        assert reused.status_code == 400

    old = await client.post("/api/auth/login", json={"email": "reset.me@example.com", "password": "password123"})
    assert old.status_code == 401
    new = await client.post("/api/auth/login", json={"email": "reset.me@example.com", "password": "brand-new-pass"})
    assert new.status_code == 200
