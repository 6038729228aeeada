"""Sponsorship catalog, subscription request and subscription ORM models."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, BigInteger, Numeric, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column
from marketplace.db.database import Base


class Sponsorship(Base):
    __tablename__ = "sponsorships"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # days
    discount: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), default=0.0)  # percent
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SponsorshipSubscriptionRequest(Base):
    __tablename__ = "sponsorship_subscription_requests"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    sponsorship_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sponsorships.id"), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    entity_name: Mapped[str] = mapped_column(String(512), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # pending, pending_payment, approved, rejected, failed
    requested_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"))
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Set while the request is open; unique so only one open request per entity/sponsorship
    open_key: Mapped[str | None] = mapped_column(String(128), unique=True)

    # Payment
    external_id: Mapped[int | None] = mapped_column(BigInteger, unique=True)
    payment_status: Mapped[str | None] = mapped_column(String(20))  # pending, success, failed
    collect_url: Mapped[str | None] = mapped_column(Text)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Approval
    admin_approved: Mapped[bool | None] = mapped_column(Boolean)
    admin_note: Mapped[str | None] = mapped_column(Text)
    approved_by: Mapped[str | None] = mapped_column(String(64))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime)
    rejected_by: Mapped[str | None] = mapped_column(String(64))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime)


class SponsorshipSubscription(Base):
    __tablename__ = "sponsorship_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    sponsorship_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sponsorships.id"), nullable=False)
    request_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("sponsorship_subscription_requests.id"), unique=True)
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")  # active, expired
    active_key: Mapped[str | None] = mapped_column(String(128), unique=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False)
    discount_applied: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
