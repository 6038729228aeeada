"""
Entity directory: lookup of sponsorable entities by (type, id).

Company and wholesaler branches resolve together with their parent business;
service providers stand alone.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.business import (
    Company, CompanyBranch, Wholesaler, WholesalerBranch, ServiceProvider,
)
from marketplace.models.sponsorship import SponsorshipSubscriptionRequest, SponsorshipSubscription
from marketplace.schemas import EntityType, SubscriptionStatus

ENTITY_MODELS = {
    EntityType.COMPANY_BRANCH: CompanyBranch,
    EntityType.WHOLESALER_BRANCH: WholesalerBranch,
    EntityType.SERVICE_PROVIDER: ServiceProvider,
}

ENTITY_LABELS = {
    EntityType.COMPANY_BRANCH: "Company Branch",
    EntityType.WHOLESALER_BRANCH: "Wholesaler Branch",
    EntityType.SERVICE_PROVIDER: "Service Provider",
}


@dataclass
class ResolvedEntity:
    entity_type: EntityType
    entity: CompanyBranch | WholesalerBranch | ServiceProvider
    parent: Company | Wholesaler | None = None

    @property
    def name(self) -> str:
        if self.parent is not None:
            return f"{self.parent.business_name} - {self.entity.name}"
        return self.entity.business_name

    @property
    def owner_user_id(self) -> uuid.UUID | None:
        if self.parent is not None:
            return self.parent.user_id
        return self.entity.user_id

    def details(self) -> dict:
        if self.entity_type == EntityType.SERVICE_PROVIDER:
            return {
                "id": str(self.entity.id),
                "businessName": self.entity.business_name,
                "category": self.entity.category,
                "phone": self.entity.phone,
                "city": self.entity.city,
                "sponsorship": self.entity.sponsorship,
            }
        parent_key = "companyId" if self.entity_type == EntityType.COMPANY_BRANCH else "wholesalerId"
        return {
            "id": str(self.entity.id),
            "name": self.entity.name,
            parent_key: str(self.parent.id),
            "businessName": self.parent.business_name,
            "category": self.entity.category,
            "phone": self.entity.phone,
            "city": self.entity.city,
            "sponsorship": self.entity.sponsorship,
        }


def normalize_entity_type(value: str | EntityType) -> EntityType:
    try:
        return EntityType(value)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="Invalid entity type. Must be company_branch, wholesaler_branch or service_provider",
        )


async def find_entity(db: AsyncSession, entity_type: EntityType, entity_id: uuid.UUID) -> ResolvedEntity | None:
    entity_type = normalize_entity_type(entity_type)
    model = ENTITY_MODELS[entity_type]
    entity = (await db.execute(select(model).where(model.id == entity_id))).scalar_one_or_none()
    if entity is None:
        return None

    parent = None
    if entity_type == EntityType.COMPANY_BRANCH:
        parent = (await db.execute(
            select(Company).where(Company.id == entity.company_id)
        )).scalar_one_or_none()
    elif entity_type == EntityType.WHOLESALER_BRANCH:
        parent = (await db.execute(
            select(Wholesaler).where(Wholesaler.id == entity.wholesaler_id)
        )).scalar_one_or_none()
    if entity_type != EntityType.SERVICE_PROVIDER and parent is None:
        return None

    return ResolvedEntity(entity_type=entity_type, entity=entity, parent=parent)


async def resolve_entity(db: AsyncSession, entity_type: EntityType, entity_id: uuid.UUID) -> ResolvedEntity:
    """Like find_entity, but a missing entity is a 404."""
    resolved = await find_entity(db, entity_type, entity_id)
    if resolved is None:
        label = ENTITY_LABELS[normalize_entity_type(entity_type)]
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return resolved


async def set_sponsorship_flag(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: uuid.UUID,
    value: bool,
) -> bool:
    """Flip the entity's sponsorship flag; False if the entity is gone. Does not commit."""
    model = ENTITY_MODELS[normalize_entity_type(entity_type)]
    result = await db.execute(
        update(model)
        .where(model.id == entity_id)
        .values(sponsorship=value, updated_at=datetime.utcnow())
    )
    return result.rowcount > 0


async def ensure_deletable(
    db: AsyncSession,
    entity_type: EntityType | str,
    entity_ids: list[uuid.UUID],
    now: datetime | None = None,
) -> None:
    """409 while any of the entities has an open request or an unexpired subscription."""
    if not entity_ids:
        return
    entity_type = normalize_entity_type(entity_type)
    now = now or datetime.utcnow()

    open_requests = await db.scalar(
        select(func.count()).select_from(SponsorshipSubscriptionRequest).where(
            SponsorshipSubscriptionRequest.entity_type == entity_type.value,
            SponsorshipSubscriptionRequest.entity_id.in_(entity_ids),
            SponsorshipSubscriptionRequest.open_key.is_not(None),
        )
    )
    if open_requests:
        raise HTTPException(
            status_code=409,
            detail=f"{ENTITY_LABELS[entity_type]} has a sponsorship request in progress",
        )

    active = await db.scalar(
        select(func.count()).select_from(SponsorshipSubscription).where(
            SponsorshipSubscription.entity_type == entity_type.value,
            SponsorshipSubscription.entity_id.in_(entity_ids),
            SponsorshipSubscription.status == SubscriptionStatus.ACTIVE.value,
            SponsorshipSubscription.end_date > now,
        )
    )
    if active:
        raise HTTPException(
            status_code=409,
            detail=f"{ENTITY_LABELS[entity_type]} has an active sponsorship subscription",
        )
