"""
Sponsorship subscription request endpoints.

Owners request a sponsorship for one of their entities and receive a Whish
collect URL; admins file requests on behalf of entities and approve or
reject them.
"""

import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.database import get_db
from marketplace.models.user import User
from marketplace.schemas import Envelope, Page, EntityType, envelope, paginate
from marketplace.schemas.sponsorship import (
    SubscriptionRequestCreate, SubscriptionRequestResponse, RequestCreated, RequestDecision,
    PendingRequestItem, SubscriptionResponse, RemainingTimeResponse,
)
from marketplace.services import sponsorship as lifecycle
from marketplace.services.entities import resolve_entity
from marketplace.services.security import get_current_user, require_admin
from marketplace.services.whish import WhishClient, get_payment_gateway

router = APIRouter()


@router.post("", response_model=Envelope[RequestCreated], status_code=201)
async def create_subscription_request(
    data: SubscriptionRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: WhishClient = Depends(get_payment_gateway),
):
    req, sponsorship = await lifecycle.create_request(db, gateway, user, data)
    message = (
        "Sponsorship request created. Complete the payment to activate it."
        if req.collect_url else
        "Sponsorship request submitted for approval"
    )
    return envelope(message, {
        "request": req,
        "sponsorship": lifecycle.sponsorship_out(sponsorship),
        "payment_url": req.collect_url,
        "price": sponsorship.price,
    }, status=201)


@router.get("/pending", response_model=Envelope[Page[PendingRequestItem]])
async def list_pending(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    entity_type: EntityType | None = Query(None, alias="entityType"),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    items, total = await lifecycle.list_pending_requests(db, page, limit, entity_type)
    return envelope("Pending requests retrieved", paginate(items, page, limit, total))


@router.post("/{request_id}/process", response_model=Envelope[SubscriptionRequestResponse])
async def process_subscription_request(
    request_id: uuid.UUID,
    decision: RequestDecision,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    req = await lifecycle.process_request(db, request_id, decision, admin)
    return envelope(f"Request {req.status}", req)


@router.get("/entity/{entity_type}/{entity_id}", response_model=Envelope[list[SubscriptionRequestResponse]])
async def list_entity_requests(
    entity_type: EntityType,
    entity_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await lifecycle.list_entity_requests(db, user, entity_type, entity_id)
    return envelope("Requests retrieved", rows)


# ── Subscriptions ──────────────────────────────────────────

@router.get("/subscriptions/active", response_model=Envelope[Page[SubscriptionResponse]])
async def list_active_subscriptions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    entity_type: EntityType | None = Query(None, alias="entityType"),
    sponsorship_id: uuid.UUID | None = Query(None, alias="sponsorshipId"),
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await lifecycle.list_active_subscriptions(db, page, limit, entity_type, sponsorship_id)
    return envelope("Active subscriptions retrieved", paginate(rows, page, limit, total))


@router.get(
    "/subscriptions/{entity_type}/{entity_id}/remaining-time",
    response_model=Envelope[RemainingTimeResponse],
)
async def get_remaining_time(
    entity_type: EntityType,
    entity_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    resolved = await resolve_entity(db, entity_type, entity_id)
    lifecycle.ensure_entity_access(user, resolved)
    result = await lifecycle.remaining_time(db, entity_type, entity_id)
    message = (
        "Remaining time retrieved" if result.has_active_subscription
        else result.message
    )
    return envelope(message, result)
