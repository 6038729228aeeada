"""Voucher catalog (admin) and redemption (accounts)."""

import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.database import get_db
from marketplace.models.user import User
from marketplace.schemas import Envelope, Page, envelope, paginate
from marketplace.schemas.rewards import (
    VoucherCreate, VoucherUpdate, VoucherResponse, AvailableVoucher,
    VoucherPurchaseResponse, PurchaseResult,
)
from marketplace.services import vouchers as service
from marketplace.services.security import get_current_user, require_admin

router = APIRouter()


def _purchase_out(purchase, voucher) -> dict:
    return {
        "id": purchase.id,
        "voucher_id": purchase.voucher_id,
        "points_used": purchase.points_used,
        "purchased_at": purchase.purchased_at,
        "is_used": purchase.is_used,
        "used_at": purchase.used_at,
        "voucher": voucher,
    }


# ── Account side ───────────────────────────────────────────

@router.get("/available", response_model=Envelope[list[AvailableVoucher]])
async def list_available(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return envelope("Vouchers retrieved", await service.available_vouchers(db, user))


@router.get("/purchases", response_model=Envelope[list[VoucherPurchaseResponse]])
async def list_my_purchases(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    rows = await service.list_purchases(db, user)
    return envelope("Purchased vouchers retrieved", [_purchase_out(p, v) for p, v in rows])


@router.post("/purchases/{purchase_id}/use", response_model=Envelope[VoucherPurchaseResponse])
async def use_purchased_voucher(
    purchase_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    purchase = await service.use_voucher(db, user, purchase_id)
    return envelope("Voucher marked as used", _purchase_out(purchase, None))


@router.post("/{voucher_id}/purchase", response_model=Envelope[PurchaseResult])
async def purchase(
    voucher_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    purchase, voucher = await service.purchase_voucher(db, user, voucher_id)
    return envelope("Voucher purchased", {
        "purchase": _purchase_out(purchase, voucher),
        "remaining_points": user.points,
    })


# ── Admin ──────────────────────────────────────────────────

@router.post("", response_model=Envelope[VoucherResponse], status_code=201)
async def create_voucher(
    data: VoucherCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Voucher created", await service.create_voucher(db, admin, data), status=201)


@router.get("", response_model=Envelope[Page[VoucherResponse]])
async def list_vouchers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await service.list_vouchers(db, page, limit)
    return envelope("Vouchers retrieved", paginate(rows, page, limit, total))


@router.patch("/{voucher_id}", response_model=Envelope[VoucherResponse])
async def update_voucher(
    voucher_id: uuid.UUID,
    data: VoucherUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Voucher updated", await service.update_voucher(db, voucher_id, data))


@router.post("/{voucher_id}/activate", response_model=Envelope[VoucherResponse])
async def activate_voucher(
    voucher_id: uuid.UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Voucher activated", await service.set_voucher_active(db, voucher_id, True))


@router.post("/{voucher_id}/deactivate", response_model=Envelope[VoucherResponse])
async def deactivate_voucher(
    voucher_id: uuid.UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Voucher deactivated", await service.set_voucher_active(db, voucher_id, False))


@router.delete("/{voucher_id}", response_model=Envelope[None])
async def delete_voucher(
    voucher_id: uuid.UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await service.delete_voucher(db, voucher_id)
    return envelope("Voucher deleted")
