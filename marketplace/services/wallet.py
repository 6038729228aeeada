"""
Admin wallet ledger.

Income is appended to ``admin_wallet`` and added to the singleton balance row
with an atomic ``SET x = x + :amount``. Nothing here commits; the caller owns
the transaction.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.wallet import AdminWalletTransaction, AdminWalletBalance, BALANCE_ROW_ID

logger = logging.getLogger(__name__)

SUBSCRIPTION_INCOME = "subscription_income"


async def _ensure_balance_row(db: AsyncSession, now: datetime) -> None:
    """Insert the zeroed singleton row unless it already exists."""
    dialect = db.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    await db.execute(
        insert(AdminWalletBalance)
        .values(
            id=BALANCE_ROW_ID,
            total_income=0.0,
            total_withdrawal_income=0.0,
            total_commissions_paid=0.0,
            net_balance=0.0,
            last_updated=now,
        )
        .on_conflict_do_nothing(index_elements=["id"])
    )


async def credit_income(
    db: AsyncSession,
    amount: float,
    description: str,
    entity_id: uuid.UUID | None = None,
    entity_type: str | None = None,
    tx_type: str = SUBSCRIPTION_INCOME,
) -> AdminWalletTransaction:
    """Record an income transaction and add it to the running balance."""
    now = datetime.utcnow()
    tx = AdminWalletTransaction(
        type=tx_type,
        amount=amount,
        description=description,
        entity_id=entity_id,
        entity_type=entity_type,
        created_at=now,
    )
    db.add(tx)

    await _ensure_balance_row(db, now)
    await db.execute(
        update(AdminWalletBalance)
        .where(AdminWalletBalance.id == BALANCE_ROW_ID)
        .values(
            total_income=AdminWalletBalance.total_income + amount,
            net_balance=AdminWalletBalance.net_balance + amount,
            last_updated=now,
        )
    )

    await db.flush()
    logger.debug("Admin wallet credit of %.2f staged (%s)", amount, description)
    return tx


async def get_balance(db: AsyncSession) -> AdminWalletBalance:
    """Current balance; an all-zero row if nothing has been credited yet."""
    balance = (await db.execute(
        select(AdminWalletBalance).where(AdminWalletBalance.id == BALANCE_ROW_ID)
    )).scalar_one_or_none()
    if balance is None:
        return AdminWalletBalance(
            id=BALANCE_ROW_ID,
            total_income=0.0,
            total_withdrawal_income=0.0,
            total_commissions_paid=0.0,
            net_balance=0.0,
            last_updated=datetime.utcnow(),
        )
    return balance


async def list_transactions(
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    tx_type: str | None = None,
) -> tuple[list[AdminWalletTransaction], int]:
    query = select(AdminWalletTransaction)
    count_query = select(func.count()).select_from(AdminWalletTransaction)
    if tx_type:
        query = query.where(AdminWalletTransaction.type == tx_type)
        count_query = count_query.where(AdminWalletTransaction.type == tx_type)

    total = await db.scalar(count_query) or 0
    rows = (await db.execute(
        query.order_by(AdminWalletTransaction.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )).scalars().all()
    return list(rows), total
