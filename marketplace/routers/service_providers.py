"""Service provider profile endpoints."""

import uuid
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.database import get_db
from marketplace.models.business import ServiceProvider
from marketplace.models.user import User
from marketplace.schemas import (
    Envelope, Page, EntityType, envelope, paginate, UserType,
    ServiceProviderCreate, ServiceProviderUpdate, ServiceProviderResponse,
)
from marketplace.services.entities import ensure_deletable
from marketplace.services.security import require_admin, require_roles

router = APIRouter()
provider_only = require_roles(UserType.SERVICE_PROVIDER)


async def _own_profile(db: AsyncSession, user: User) -> ServiceProvider:
    provider = (await db.execute(
        select(ServiceProvider).where(ServiceProvider.user_id == user.id)
    )).scalar_one_or_none()
    if not provider:
        raise HTTPException(status_code=404, detail="Service provider profile not found")
    return provider


async def _by_id(db: AsyncSession, provider_id: uuid.UUID) -> ServiceProvider:
    provider = (await db.execute(
        select(ServiceProvider).where(ServiceProvider.id == provider_id)
    )).scalar_one_or_none()
    if not provider:
        raise HTTPException(status_code=404, detail="Service provider not found")
    return provider


@router.post("", response_model=Envelope[ServiceProviderResponse], status_code=201)
async def create_profile(
    data: ServiceProviderCreate,
    user: User = Depends(provider_only),
    db: AsyncSession = Depends(get_db),
):
    existing = (await db.execute(
        select(ServiceProvider).where(ServiceProvider.user_id == user.id)
    )).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="Service provider profile already exists")

    provider = ServiceProvider(user_id=user.id, **data.model_dump())
    db.add(provider)
    await db.commit()
    await db.refresh(provider)
    return envelope("Service provider created", provider, status=201)


@router.get("/me", response_model=Envelope[ServiceProviderResponse])
async def get_profile(user: User = Depends(provider_only), db: AsyncSession = Depends(get_db)):
    return envelope("Service provider retrieved", await _own_profile(db, user))


@router.patch("/me", response_model=Envelope[ServiceProviderResponse])
async def update_profile(
    data: ServiceProviderUpdate,
    user: User = Depends(provider_only),
    db: AsyncSession = Depends(get_db),
):
    provider = await _own_profile(db, user)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(provider, field, value)
    await db.commit()
    await db.refresh(provider)
    return envelope("Service provider updated", provider)


# ── Admin ──────────────────────────────────────────────────

@router.get("", response_model=Envelope[Page[ServiceProviderResponse]])
async def list_providers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    total = await db.scalar(select(func.count()).select_from(ServiceProvider)) or 0
    rows = (await db.execute(
        select(ServiceProvider)
        .order_by(ServiceProvider.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )).scalars().all()
    return envelope("Service providers retrieved", paginate(list(rows), page, limit, total))


@router.get("/{provider_id}", response_model=Envelope[ServiceProviderResponse])
async def get_provider(
    provider_id: uuid.UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Service provider retrieved", await _by_id(db, provider_id))


@router.patch("/{provider_id}", response_model=Envelope[ServiceProviderResponse])
async def admin_update_provider(
    provider_id: uuid.UUID,
    data: ServiceProviderUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    provider = await _by_id(db, provider_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(provider, field, value)
    await db.commit()
    await db.refresh(provider)
    return envelope("Service provider updated", provider)


@router.delete("/{provider_id}", response_model=Envelope[None])
async def delete_provider(
    provider_id: uuid.UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    provider = await _by_id(db, provider_id)
    await ensure_deletable(db, EntityType.SERVICE_PROVIDER, [provider.id])
    await db.delete(provider)
    await db.commit()
    return envelope("Service provider deleted")
