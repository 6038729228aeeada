"""
Voucher catalog and point redemption.
"""

import logging
import uuid
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.user import User
from marketplace.models.voucher import Voucher, VoucherPurchase
from marketplace.schemas.rewards import VoucherCreate, VoucherUpdate

logger = logging.getLogger(__name__)


def _targets(user: User):
    return or_(Voucher.target_user_type.is_(None), Voucher.target_user_type == user.user_type)


async def get_voucher(db: AsyncSession, voucher_id: uuid.UUID) -> Voucher:
    voucher = (await db.execute(select(Voucher).where(Voucher.id == voucher_id))).scalar_one_or_none()
    if not voucher:
        raise HTTPException(status_code=404, detail="Voucher not found")
    return voucher


# ── Admin catalog ──────────────────────────────────────────

async def create_voucher(db: AsyncSession, admin: User, data: VoucherCreate) -> Voucher:
    voucher = Voucher(
        name=data.name,
        description=data.description,
        image=data.image,
        points=data.points,
        is_active=True,
        target_user_type=data.target_user_type.value if data.target_user_type else None,
        created_by=admin.id,
    )
    db.add(voucher)
    await db.commit()
    await db.refresh(voucher)
    logger.info("Voucher %s created (%d points)", voucher.id, voucher.points)
    return voucher


async def update_voucher(db: AsyncSession, voucher_id: uuid.UUID, data: VoucherUpdate) -> Voucher:
    voucher = await get_voucher(db, voucher_id)
    changes = data.model_dump(exclude_unset=True)
    if "target_user_type" in changes and changes["target_user_type"] is not None:
        changes["target_user_type"] = changes["target_user_type"].value
    for field, value in changes.items():
        setattr(voucher, field, value)
    await db.commit()
    await db.refresh(voucher)
    return voucher


async def set_voucher_active(db: AsyncSession, voucher_id: uuid.UUID, active: bool) -> Voucher:
    voucher = await get_voucher(db, voucher_id)
    voucher.is_active = active
    await db.commit()
    await db.refresh(voucher)
    return voucher


async def delete_voucher(db: AsyncSession, voucher_id: uuid.UUID) -> None:
    voucher = await get_voucher(db, voucher_id)
    purchased = await db.scalar(
        select(func.count()).select_from(VoucherPurchase).where(VoucherPurchase.voucher_id == voucher_id)
    )
    if purchased:
        raise HTTPException(status_code=409, detail="Voucher has been purchased; deactivate it instead")
    await db.delete(voucher)
    await db.commit()


async def list_vouchers(db: AsyncSession, page: int = 1, limit: int = 20) -> tuple[list[Voucher], int]:
    total = await db.scalar(select(func.count()).select_from(Voucher)) or 0
    rows = (await db.execute(
        select(Voucher).order_by(Voucher.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )).scalars().all()
    return list(rows), total


# ── Account side ───────────────────────────────────────────

async def available_vouchers(db: AsyncSession, user: User) -> list[dict]:
    """Active vouchers for the caller's account type, flagged with whether they can buy them."""
    vouchers = (await db.execute(
        select(Voucher)
        .where(Voucher.is_active.is_(True), _targets(user))
        .order_by(Voucher.points.asc())
    )).scalars().all()
    purchased_ids = set((await db.execute(
        select(VoucherPurchase.voucher_id).where(VoucherPurchase.user_id == user.id)
    )).scalars().all())

    items = []
    for v in vouchers:
        purchased = v.id in purchased_ids
        items.append({
            "id": v.id,
            "name": v.name,
            "description": v.description,
            "image": v.image,
            "points": v.points,
            "is_active": v.is_active,
            "target_user_type": v.target_user_type,
            "created_at": v.created_at,
            "purchased": purchased,
            "can_purchase": not purchased and user.points >= v.points,
        })
    return items


async def purchase_voucher(
    db: AsyncSession,
    user: User,
    voucher_id: uuid.UUID,
    now: datetime | None = None,
) -> tuple[VoucherPurchase, Voucher]:
    now = now or datetime.utcnow()
    voucher = (await db.execute(
        select(Voucher).where(Voucher.id == voucher_id, Voucher.is_active.is_(True), _targets(user))
    )).scalar_one_or_none()
    if not voucher:
        raise HTTPException(status_code=404, detail="Voucher not found or not available")

    already = await db.scalar(
        select(func.count()).select_from(VoucherPurchase).where(
            VoucherPurchase.user_id == user.id,
            VoucherPurchase.voucher_id == voucher.id,
        )
    )
    if already:
        raise HTTPException(status_code=409, detail="Voucher already purchased")

    if user.points < voucher.points:
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient points. Required: {voucher.points}, available: {user.points}",
        )

    # Only matches while the balance still covers the cost
    result = await db.execute(
        update(User)
        .where(User.id == user.id, User.points >= voucher.points)
        .values(points=User.points - voucher.points)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Insufficient points")

    purchase = VoucherPurchase(
        user_id=user.id,
        voucher_id=voucher.id,
        points_used=voucher.points,
        purchased_at=now,
        is_used=False,
    )
    db.add(purchase)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Voucher already purchased")

    await db.refresh(user)
    logger.info("User %s bought voucher %s for %d points", user.id, voucher.id, voucher.points)
    return purchase, voucher


async def use_voucher(
    db: AsyncSession,
    user: User,
    purchase_id: uuid.UUID,
    now: datetime | None = None,
) -> VoucherPurchase:
    purchase = (await db.execute(
        select(VoucherPurchase).where(
            VoucherPurchase.id == purchase_id,
            VoucherPurchase.user_id == user.id,
        )
    )).scalar_one_or_none()
    if not purchase:
        raise HTTPException(status_code=404, detail="Voucher purchase not found")
    if purchase.is_used:
        raise HTTPException(status_code=400, detail="Voucher already used")

    purchase.is_used = True
    purchase.used_at = now or datetime.utcnow()
    await db.commit()
    return purchase


async def list_purchases(db: AsyncSession, user: User) -> list[tuple[VoucherPurchase, Voucher]]:
    rows = (await db.execute(
        select(VoucherPurchase, Voucher)
        .join(Voucher, Voucher.id == VoucherPurchase.voucher_id)
        .where(VoucherPurchase.user_id == user.id)
        .order_by(VoucherPurchase.purchased_at.desc())
    )).all()
    return [(p, v) for p, v in rows]
