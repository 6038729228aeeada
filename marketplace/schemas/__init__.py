"""Pydantic schemas for API request/response models."""

from __future__ import annotations
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar
from pydantic import BaseModel, EmailStr, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


# ── Enums ──────────────────────────────────────────────────

class UserType(str, Enum):
    USER = "user"
    COMPANY = "company"
    WHOLESALER = "wholesaler"
    SERVICE_PROVIDER = "service_provider"
    ADMIN = "admin"


class EntityType(str, Enum):
    COMPANY_BRANCH = "company_branch"
    WHOLESALER_BRANCH = "wholesaler_branch"
    SERVICE_PROVIDER = "service_provider"

    @classmethod
    def _missing_(cls, value):
        # Mobile clients send camelCase
        aliases = {
            "companyBranch": cls.COMPANY_BRANCH,
            "wholesalerBranch": cls.WHOLESALER_BRANCH,
            "serviceProvider": cls.SERVICE_PROVIDER,
        }
        return aliases.get(value)


class RequestStatus(str, Enum):
    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


OPEN_REQUEST_STATUSES = (RequestStatus.PENDING.value, RequestStatus.PENDING_PAYMENT.value)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Timestamps are stored as naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ── Base / Envelope ────────────────────────────────────────

class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Envelope(CamelModel, Generic[T]):
    status: int = 200
    message: str
    data: T | None = None


class Page(CamelModel, Generic[T]):
    items: list[T]
    page: int
    limit: int
    total: int
    pages: int


def envelope(message: str, data=None, status: int = 200) -> dict:
    return {"status": status, "message": message, "data": data}


def paginate(items: list, page: int, limit: int, total: int) -> dict:
    return {
        "items": items,
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


# ── Account / Auth Schemas ─────────────────────────────────

class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1)
    user_type: UserType = UserType.USER
    phone: str | None = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user_id: uuid.UUID
    user_type: UserType


class UserResponse(CamelModel):
    id: uuid.UUID
    email: str
    full_name: str
    user_type: str
    phone: str | None
    points: int
    referral_code: str
    is_active: bool
    created_at: datetime


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class VerifyOTPRequest(CamelModel):
    user_id: uuid.UUID
    otp: str = Field(..., min_length=1)


class ResetPasswordRequest(CamelModel):
    user_id: uuid.UUID
    reset_token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


# ── Business Schemas ───────────────────────────────────────

class BusinessCreate(CamelModel):
    business_name: str = Field(..., min_length=1)
    category: str | None = None
    phone: str | None = None
    email: EmailStr | None = None


class BusinessUpdate(CamelModel):
    business_name: str | None = Field(None, min_length=1)
    category: str | None = None
    phone: str | None = None
    email: EmailStr | None = None


class BusinessResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    business_name: str
    category: str | None
    phone: str | None
    email: str | None
    sponsorship: bool
    created_at: datetime
    updated_at: datetime


class BranchCreate(CamelModel):
    name: str = Field(..., min_length=1)
    phone: str | None = None
    city: str | None = None
    address: str | None = None
    category: str | None = None
    description: str | None = None


class BranchUpdate(CamelModel):
    name: str | None = Field(None, min_length=1)
    phone: str | None = None
    city: str | None = None
    address: str | None = None
    category: str | None = None
    description: str | None = None


class BranchResponse(CamelModel):
    id: uuid.UUID
    name: str
    phone: str | None
    city: str | None
    address: str | None
    category: str | None
    description: str | None
    status: str
    sponsorship: bool
    created_at: datetime
    updated_at: datetime


class ServiceProviderCreate(CamelModel):
    business_name: str = Field(..., min_length=1)
    category: str | None = None
    phone: str | None = None
    city: str | None = None
    description: str | None = None


class ServiceProviderUpdate(CamelModel):
    business_name: str | None = Field(None, min_length=1)
    category: str | None = None
    phone: str | None = None
    city: str | None = None
    description: str | None = None


class ServiceProviderResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    business_name: str
    category: str | None
    phone: str | None
    city: str | None
    description: str | None
    sponsorship: bool
    created_at: datetime
    updated_at: datetime
