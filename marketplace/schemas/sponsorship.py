"""Schemas for the sponsorship catalog and the subscription lifecycle."""

from __future__ import annotations
import uuid
from datetime import datetime
from pydantic import Field, field_validator, model_validator

from marketplace.schemas import CamelModel, EntityType, to_naive_utc

MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 365


# ── Catalog ────────────────────────────────────────────────

class SponsorshipCreate(CamelModel):
    title: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    duration: int = Field(..., ge=MIN_DURATION_DAYS, le=MAX_DURATION_DAYS)
    discount: float = Field(0.0, ge=0, le=100)
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_dates(cls, value):
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("endDate must be after startDate")
        return self


class SponsorshipUpdate(CamelModel):
    title: str | None = Field(None, min_length=1)
    price: float | None = Field(None, gt=0)
    duration: int | None = Field(None, ge=MIN_DURATION_DAYS, le=MAX_DURATION_DAYS)
    discount: float | None = Field(None, ge=0, le=100)
    start_date: datetime | None = None
    end_date: datetime | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_dates(cls, value):
        return to_naive_utc(value)


class DurationInfo(CamelModel):
    days: int = 0
    weeks: int = 0
    months: int = 0
    years: int = 0
    unit: str = "days"
    is_valid: bool = False
    description: str = "Invalid duration"


class SponsorshipResponse(CamelModel):
    id: uuid.UUID
    title: str
    price: float
    duration: int
    discount: float
    used_count: int
    start_date: datetime
    end_date: datetime
    created_at: datetime
    duration_info: DurationInfo | None = None


class DurationInfoResponse(CamelModel):
    duration_info: DurationInfo
    recommended_durations: list[int]


# ── Requests ───────────────────────────────────────────────

class SubscriptionRequestCreate(CamelModel):
    sponsorship_id: uuid.UUID
    entity_type: EntityType
    entity_id: uuid.UUID
    admin_note: str | None = None


class SubscriptionRequestResponse(CamelModel):
    id: uuid.UUID
    sponsorship_id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    entity_name: str
    status: str
    requested_at: datetime
    external_id: int | None = None
    payment_status: str | None = None
    collect_url: str | None = None
    admin_approved: bool | None = None
    admin_note: str | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    paid_at: datetime | None = None
    processed_at: datetime | None = None


class RequestCreated(CamelModel):
    request: SubscriptionRequestResponse
    sponsorship: SponsorshipResponse
    payment_url: str | None = None
    price: float


class RequestDecision(CamelModel):
    status: str = Field(..., pattern="^(approved|rejected)$")
    admin_note: str | None = None


class PendingRequestItem(CamelModel):
    request: SubscriptionRequestResponse
    sponsorship: SponsorshipResponse | None = None
    entity_details: dict | None = None


# ── Subscriptions ──────────────────────────────────────────

class SubscriptionResponse(CamelModel):
    id: uuid.UUID
    sponsorship_id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    start_date: datetime
    end_date: datetime
    status: str
    auto_renew: bool
    discount_applied: float


class TimeRemaining(CamelModel):
    days: int
    hours: int
    minutes: int
    seconds: int
    total_seconds: int
    formatted: str
    human: str
    percentage_used: float
    start_date: datetime
    end_date: datetime


class RemainingTimeResponse(CamelModel):
    has_active_subscription: bool
    message: str | None = None
    entity_type: str
    time_remaining: TimeRemaining | None = None
    subscription: SubscriptionResponse | None = None
    sponsorship: SponsorshipResponse | None = None
    entity_info: dict | None = None
