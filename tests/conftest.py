"""Shared fixtures: in-memory SQLite database, factories and a fake Whish gateway."""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("WHISH_CHANNEL", "test-channel")
os.environ.setdefault("WHISH_SECRET", "test-secret")
os.environ.setdefault("WHISH_WEBSITE_URL", "https://marketplace.test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import marketplace.models  # noqa: F401
from marketplace.db.database import Base
from marketplace.models import (
    User, Company, CompanyBranch, Wholesaler, WholesalerBranch, ServiceProvider, Sponsorship,
)
from marketplace.services.security import hash_password
from marketplace.services.whish import PaymentGatewayError


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, db):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def user(self, user_type="company", email=None, points=0, password="password123"):
        return await self._save(User(
            email=email or f"{uuid.uuid4().hex[:10]}@example.com",
            full_name=f"Test {user_type}",
            password_hash=hash_password(password),
            user_type=user_type,
            points=points,
            referral_code=uuid.uuid4().hex[:8].upper(),
            is_active=True,
        ))

    async def admin(self):
        return await self.user(user_type="admin")

    async def company_branch(self, owner=None, business_name="Acme", branch_name="Downtown"):
        owner = owner or await self.user("company")
        company = await self._save(Company(user_id=owner.id, business_name=business_name))
        branch = await self._save(CompanyBranch(company_id=company.id, name=branch_name, city="Beirut"))
        return owner, company, branch

    async def wholesaler_branch(self, owner=None, business_name="Bulk Co", branch_name="Port"):
        owner = owner or await self.user("wholesaler")
        wholesaler = await self._save(Wholesaler(user_id=owner.id, business_name=business_name))
        branch = await self._save(WholesalerBranch(wholesaler_id=wholesaler.id, name=branch_name))
        return owner, wholesaler, branch

    async def service_provider(self, owner=None, business_name="Fix It"):
        owner = owner or await self.user("service_provider")
        provider = await self._save(ServiceProvider(user_id=owner.id, business_name=business_name))
        return owner, provider

    async def sponsorship(self, price=100.0, duration=30, discount=0.0, start=None, end=None, title="Gold"):
        now = datetime.utcnow()
        return await self._save(Sponsorship(
            title=title,
            price=price,
            duration=duration,
            discount=discount,
            used_count=0,
            start_date=start or now - timedelta(days=1),
            end_date=end or now + timedelta(days=365),
        ))


@pytest_asyncio.fixture
async def factory(db):
    return Factory(db)


class FakeGateway:
    """Stands in for WhishClient; records calls and returns canned answers."""

    def __init__(self):
        self.created = []
        self.status_calls = []
        self.collect_status = "success"
        self.fail_create = False
        self.fail_status = False

    async def create_payment(self, **kwargs):
        if self.fail_create:
            raise PaymentGatewayError("whish API error: 500 - Service unavailable")
        self.created.append(kwargs)
        return f"https://pay.whish.test/collect/{kwargs['external_id']}"

    async def get_payment_status(self, currency, external_id):
        self.status_calls.append(external_id)
        if self.fail_status:
            raise PaymentGatewayError("whish API error: timeout")
        return self.collect_status, "96170123456"

    async def get_balance(self):
        return 1250.75

    async def get_rate(self, amount, currency):
        return round(amount * 0.01, 2)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_factory, gateway):
    """HTTP client bound to the app, sharing the test database and fake gateway."""
    import httpx
    from marketplace.db.database import get_db
    from marketplace.main import app
    from marketplace.services.whish import get_payment_gateway

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from marketplace.services.security import create_access_token

    def headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user)}"}
    return headers
