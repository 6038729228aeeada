"""Sponsorship catalog endpoints. Reads for any account, writes for admins."""

import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.database import get_db
from marketplace.models.sponsorship import Sponsorship
from marketplace.models.user import User
from marketplace.schemas import Envelope, Page, envelope, paginate
from marketplace.schemas.sponsorship import (
    SponsorshipCreate, SponsorshipUpdate, SponsorshipResponse, DurationInfoResponse,
)
from marketplace.services.catalog import (
    RECOMMENDED_DURATIONS, duration_info, get_sponsorship, is_referenced,
)
from marketplace.services.security import get_current_user, require_admin
from marketplace.services.sponsorship import sponsorship_out

router = APIRouter()
logger = logging.getLogger(__name__)


async def _get_or_404(db: AsyncSession, sponsorship_id: uuid.UUID) -> Sponsorship:
    sponsorship = await get_sponsorship(db, sponsorship_id)
    if not sponsorship:
        raise HTTPException(status_code=404, detail="Sponsorship not found")
    return sponsorship


@router.post("", response_model=Envelope[SponsorshipResponse], status_code=201)
async def create_sponsorship(
    data: SponsorshipCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    sponsorship = Sponsorship(**data.model_dump(), used_count=0, created_by=admin.id)
    db.add(sponsorship)
    await db.commit()
    await db.refresh(sponsorship)
    logger.info("Sponsorship %s created: %s (%d days, %.2f)", sponsorship.id, sponsorship.title,
                sponsorship.duration, sponsorship.price)
    return envelope("Sponsorship created", sponsorship_out(sponsorship), status=201)


@router.get("", response_model=Envelope[Page[SponsorshipResponse]])
async def list_sponsorships(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    total = await db.scalar(select(func.count()).select_from(Sponsorship)) or 0
    rows = (await db.execute(
        select(Sponsorship)
        .order_by(Sponsorship.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )).scalars().all()
    items = [sponsorship_out(s) for s in rows]
    return envelope("Sponsorships retrieved", paginate(items, page, limit, total))


@router.get("/duration-info", response_model=Envelope[DurationInfoResponse])
async def get_duration_info(duration: int = Query(...), _: User = Depends(get_current_user)):
    """Breakdown of a duration in days, plus the recommended presets."""
    return envelope("Duration info retrieved", {
        "duration_info": duration_info(duration),
        "recommended_durations": RECOMMENDED_DURATIONS,
    })


@router.get("/{sponsorship_id}", response_model=Envelope[SponsorshipResponse])
async def get_sponsorship_by_id(
    sponsorship_id: uuid.UUID,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Sponsorship retrieved", sponsorship_out(await _get_or_404(db, sponsorship_id)))


@router.patch("/{sponsorship_id}", response_model=Envelope[SponsorshipResponse])
async def update_sponsorship(
    sponsorship_id: uuid.UUID,
    data: SponsorshipUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    sponsorship = await _get_or_404(db, sponsorship_id)
    if await is_referenced(db, sponsorship_id):
        raise HTTPException(status_code=409, detail="Sponsorship is in use and can no longer be modified")

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    start = changes.get("start_date", sponsorship.start_date)
    end = changes.get("end_date", sponsorship.end_date)
    if end <= start:
        raise HTTPException(status_code=400, detail="endDate must be after startDate")

    for field, value in changes.items():
        setattr(sponsorship, field, value)
    await db.commit()
    await db.refresh(sponsorship)
    return envelope("Sponsorship updated", sponsorship_out(sponsorship))


@router.delete("/{sponsorship_id}", response_model=Envelope[None])
async def delete_sponsorship(
    sponsorship_id: uuid.UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    sponsorship = await _get_or_404(db, sponsorship_id)
    if await is_referenced(db, sponsorship_id):
        raise HTTPException(status_code=409, detail="Sponsorship is in use and cannot be deleted")
    await db.delete(sponsorship)
    await db.commit()
    return envelope("Sponsorship deleted")
