"""Schemas for referrals, vouchers and the admin wallet."""

from __future__ import annotations
import uuid
from datetime import datetime
from pydantic import Field

from marketplace.schemas import CamelModel, UserType


# ── Referrals ──────────────────────────────────────────────

class ReferralApply(CamelModel):
    referral_code: str = ""


class ReferralResult(CamelModel):
    referrer_name: str
    points_awarded: int


class ReferralSummary(CamelModel):
    referral_code: str
    points: int
    referral_count: int


# ── Vouchers ───────────────────────────────────────────────

class VoucherCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    image: str | None = None
    points: int = Field(..., gt=0)
    target_user_type: UserType | None = None


class VoucherUpdate(CamelModel):
    name: str | None = Field(None, min_length=1)
    description: str | None = Field(None, min_length=1)
    image: str | None = None
    points: int | None = Field(None, gt=0)
    target_user_type: UserType | None = None


class VoucherResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: str
    image: str | None
    points: int
    is_active: bool
    target_user_type: str | None
    created_at: datetime


class AvailableVoucher(VoucherResponse):
    can_purchase: bool = False
    purchased: bool = False


class VoucherPurchaseResponse(CamelModel):
    id: uuid.UUID
    voucher_id: uuid.UUID
    points_used: int
    purchased_at: datetime
    is_used: bool
    used_at: datetime | None
    voucher: VoucherResponse | None = None


class PurchaseResult(CamelModel):
    purchase: VoucherPurchaseResponse
    remaining_points: int


# ── Admin wallet ───────────────────────────────────────────

class WalletBalanceResponse(CamelModel):
    total_income: float
    total_withdrawal_income: float
    total_commissions_paid: float
    net_balance: float
    last_updated: datetime


class WalletTransactionResponse(CamelModel):
    id: uuid.UUID
    type: str
    amount: float
    description: str
    entity_id: uuid.UUID | None
    entity_type: str | None
    created_at: datetime


class GatewayBalanceResponse(CamelModel):
    balance: float
    currency: str
