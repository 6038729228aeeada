"""Admin wallet ORM models: append-only transaction log plus a singleton balance row."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Numeric, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from marketplace.db.database import Base

BALANCE_ROW_ID = 1


class AdminWalletTransaction(Base):
    __tablename__ = "admin_wallet"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(40), nullable=False)  # subscription_income, withdrawal_income, commission_paid
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[uuid.UUID | None] = mapped_column()
    entity_type: Mapped[str | None] = mapped_column(String(40))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class AdminWalletBalance(Base):
    __tablename__ = "admin_wallet_balance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=BALANCE_ROW_ID)
    total_income: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), default=0.0)
    total_withdrawal_income: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), default=0.0)
    total_commissions_paid: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), default=0.0)
    net_balance: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), default=0.0)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
