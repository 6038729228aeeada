"""
Company and wholesaler endpoints.

Both account types own one business profile with any number of branches;
the two routers differ only in their models and labels.
"""

import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.database import get_db
from marketplace.models.business import Company, CompanyBranch, Wholesaler, WholesalerBranch
from marketplace.models.user import User
from marketplace.schemas import (
    Envelope, Page, EntityType, envelope, paginate, UserType,
    BusinessCreate, BusinessUpdate, BusinessResponse,
    BranchCreate, BranchUpdate, BranchResponse,
)
from marketplace.services.entities import ensure_deletable
from marketplace.services.security import get_current_user, require_admin, require_roles

logger = logging.getLogger(__name__)


def build_router(
    business_model,
    branch_model,
    parent_field: str,
    role: UserType,
    entity_type: EntityType,
    label: str,
) -> APIRouter:
    router = APIRouter()
    owner_only = require_roles(role)

    async def _own_business(db: AsyncSession, user: User):
        business = (await db.execute(
            select(business_model).where(business_model.user_id == user.id)
        )).scalar_one_or_none()
        if not business:
            raise HTTPException(status_code=404, detail=f"{label} profile not found")
        return business

    async def _branch_for(db: AsyncSession, user: User, branch_id: uuid.UUID):
        branch = (await db.execute(
            select(branch_model).where(branch_model.id == branch_id)
        )).scalar_one_or_none()
        if not branch:
            raise HTTPException(status_code=404, detail="Branch not found")
        if user.user_type != UserType.ADMIN.value:
            business = await _own_business(db, user)
            if getattr(branch, parent_field) != business.id:
                raise HTTPException(status_code=403, detail="You do not own this branch")
        return branch

    # ── Profile ────────────────────────────────────────────

    @router.post("", response_model=Envelope[BusinessResponse], status_code=201)
    async def create_profile(
        data: BusinessCreate,
        user: User = Depends(owner_only),
        db: AsyncSession = Depends(get_db),
    ):
        existing = (await db.execute(
            select(business_model).where(business_model.user_id == user.id)
        )).scalar_one_or_none()
        if existing:
            raise HTTPException(status_code=409, detail=f"{label} profile already exists")

        business = business_model(user_id=user.id, **data.model_dump())
        db.add(business)
        await db.commit()
        await db.refresh(business)
        logger.info("%s profile %s created by %s", label, business.id, user.id)
        return envelope(f"{label} created", business, status=201)

    @router.get("/me", response_model=Envelope[BusinessResponse])
    async def get_profile(user: User = Depends(owner_only), db: AsyncSession = Depends(get_db)):
        return envelope(f"{label} retrieved", await _own_business(db, user))

    @router.patch("/me", response_model=Envelope[BusinessResponse])
    async def update_profile(
        data: BusinessUpdate,
        user: User = Depends(owner_only),
        db: AsyncSession = Depends(get_db),
    ):
        business = await _own_business(db, user)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(business, field, value)
        await db.commit()
        await db.refresh(business)
        return envelope(f"{label} updated", business)

    # ── Branches ───────────────────────────────────────────

    @router.post("/me/branches", response_model=Envelope[BranchResponse], status_code=201)
    async def create_branch(
        data: BranchCreate,
        user: User = Depends(owner_only),
        db: AsyncSession = Depends(get_db),
    ):
        business = await _own_business(db, user)
        branch = branch_model(**{parent_field: business.id}, **data.model_dump())
        db.add(branch)
        await db.commit()
        await db.refresh(branch)
        return envelope("Branch created", branch, status=201)

    @router.get("/me/branches", response_model=Envelope[Page[BranchResponse]])
    async def list_branches(
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        user: User = Depends(owner_only),
        db: AsyncSession = Depends(get_db),
    ):
        business = await _own_business(db, user)
        parent_col = getattr(branch_model, parent_field)
        total = await db.scalar(
            select(func.count()).select_from(branch_model).where(parent_col == business.id)
        ) or 0
        rows = (await db.execute(
            select(branch_model)
            .where(parent_col == business.id)
            .order_by(branch_model.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )).scalars().all()
        return envelope("Branches retrieved", paginate(list(rows), page, limit, total))

    @router.get("/branches/{branch_id}", response_model=Envelope[BranchResponse])
    async def get_branch(
        branch_id: uuid.UUID,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        return envelope("Branch retrieved", await _branch_for(db, user, branch_id))

    @router.patch("/branches/{branch_id}", response_model=Envelope[BranchResponse])
    async def update_branch(
        branch_id: uuid.UUID,
        data: BranchUpdate,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        branch = await _branch_for(db, user, branch_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(branch, field, value)
        await db.commit()
        await db.refresh(branch)
        return envelope("Branch updated", branch)

    @router.delete("/branches/{branch_id}", response_model=Envelope[None])
    async def delete_branch(
        branch_id: uuid.UUID,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        branch = await _branch_for(db, user, branch_id)
        await ensure_deletable(db, entity_type, [branch.id])
        await db.delete(branch)
        await db.commit()
        return envelope("Branch deleted")

    # ── Admin ──────────────────────────────────────────────

    @router.get("", response_model=Envelope[Page[BusinessResponse]])
    async def list_all(
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        _: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        total = await db.scalar(select(func.count()).select_from(business_model)) or 0
        rows = (await db.execute(
            select(business_model)
            .order_by(business_model.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )).scalars().all()
        return envelope(f"{label} list retrieved", paginate(list(rows), page, limit, total))

    @router.get("/{business_id}", response_model=Envelope[BusinessResponse])
    async def get_one(
        business_id: uuid.UUID,
        _: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        business = (await db.execute(
            select(business_model).where(business_model.id == business_id)
        )).scalar_one_or_none()
        if not business:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        return envelope(f"{label} retrieved", business)

    @router.patch("/{business_id}", response_model=Envelope[BusinessResponse])
    async def admin_update(
        business_id: uuid.UUID,
        data: BusinessUpdate,
        _: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        business = (await db.execute(
            select(business_model).where(business_model.id == business_id)
        )).scalar_one_or_none()
        if not business:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(business, field, value)
        await db.commit()
        await db.refresh(business)
        return envelope(f"{label} updated", business)

    @router.delete("/{business_id}", response_model=Envelope[None])
    async def delete_one(
        business_id: uuid.UUID,
        _: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        business = (await db.execute(
            select(business_model).where(business_model.id == business_id)
        )).scalar_one_or_none()
        if not business:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        branches = (await db.execute(
            select(branch_model).where(getattr(branch_model, parent_field) == business.id)
        )).scalars().all()
        await ensure_deletable(db, entity_type, [b.id for b in branches])
        for branch in branches:
            await db.delete(branch)
        await db.delete(business)
        await db.commit()
        logger.info("%s %s deleted with %d branches", label, business_id, len(branches))
        return envelope(f"{label} deleted")

    return router


companies = build_router(
    Company, CompanyBranch, "company_id", UserType.COMPANY, EntityType.COMPANY_BRANCH, "Company",
)
wholesalers = build_router(
    Wholesaler, WholesalerBranch, "wholesaler_id", UserType.WHOLESALER, EntityType.WHOLESALER_BRANCH, "Wholesaler",
)
