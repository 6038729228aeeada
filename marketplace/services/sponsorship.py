"""
Sponsorship subscription lifecycle.

  request ──(owner)──► pending_payment ──success callback──► approved
     │                        └──────────failure callback──► failed
     └──(admin)────► pending ──approve──► approved
                             └──reject───► rejected

Activation (ledger credit, subscription row, entity flag, usage counter,
request status) is committed as one transaction. ``open_key`` and
``active_key`` are unique columns that only hold a value while a request is
open or a subscription is active, so a second open request or a second
active subscription for the same entity/sponsorship cannot be inserted even
when two callers pass the pre-checks at the same time.
"""

import logging
import threading
import time
import uuid
from datetime import datetime, timedelta

from fastapi import HTTPException
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.models.sponsorship import (
    Sponsorship, SponsorshipSubscriptionRequest, SponsorshipSubscription,
)
from marketplace.models.user import User
from marketplace.schemas import (
    EntityType, RequestStatus, PaymentStatus, SubscriptionStatus, UserType,
    OPEN_REQUEST_STATUSES,
)
from marketplace.schemas.sponsorship import (
    SubscriptionRequestCreate, RequestDecision, RemainingTimeResponse, TimeRemaining,
    SubscriptionResponse, SponsorshipResponse,
)
from marketplace.services.catalog import get_sponsorship, duration_info
from marketplace.services.entities import (
    ResolvedEntity, ENTITY_LABELS, find_entity, resolve_entity, set_sponsorship_flag,
    normalize_entity_type,
)
from marketplace.services.mailer import send_email, notify_admin
from marketplace.services.wallet import credit_income
from marketplace.services.whish import WhishClient, PaymentGatewayError

logger = logging.getLogger(__name__)

LEDGER_ENTITY_TYPE = "sponsorship"
CALLBACK_PATH = "/api/payments/whish/sponsorship/callback"

_external_id_lock = threading.Lock()
_last_external_id = 0


def next_external_id(now_ms: int | None = None) -> int:
    """Millisecond timestamp, strictly increasing within the process."""
    global _last_external_id
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    with _external_id_lock:
        _last_external_id = max(now_ms, _last_external_id + 1)
        return _last_external_id


def triple_key(entity_type: EntityType | str, entity_id: uuid.UUID, sponsorship_id: uuid.UUID) -> str:
    return f"{normalize_entity_type(entity_type).value}:{entity_id}:{sponsorship_id}"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_time_remaining(remaining: timedelta) -> str:
    total = int(remaining.total_seconds())
    if total <= 0:
        return "Expired"

    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)

    if days > 0:
        return f"{_plural(days, 'day')}, {_plural(hours, 'hour')}"
    if hours > 0:
        return f"{_plural(hours, 'hour')}, {_plural(minutes, 'minute')}"
    if minutes > 0:
        return f"{_plural(minutes, 'minute')}, {_plural(seconds, 'second')}"
    return _plural(seconds, "second")


def ensure_entity_access(user: User, resolved: ResolvedEntity) -> None:
    if user.user_type == UserType.ADMIN.value:
        return
    if resolved.owner_user_id != user.id:
        raise HTTPException(status_code=403, detail="You do not own this entity")


# ── Queries ────────────────────────────────────────────────

async def _find_open_request(db, entity_type, entity_id, sponsorship_id):
    return (await db.execute(
        select(SponsorshipSubscriptionRequest).where(
            SponsorshipSubscriptionRequest.entity_type == entity_type.value,
            SponsorshipSubscriptionRequest.entity_id == entity_id,
            SponsorshipSubscriptionRequest.sponsorship_id == sponsorship_id,
            SponsorshipSubscriptionRequest.status.in_(OPEN_REQUEST_STATUSES),
        ).limit(1)
    )).scalar_one_or_none()


async def _find_active_subscription(db, entity_type, entity_id, sponsorship_id=None):
    query = select(SponsorshipSubscription).where(
        SponsorshipSubscription.entity_type == entity_type.value,
        SponsorshipSubscription.entity_id == entity_id,
        SponsorshipSubscription.status == SubscriptionStatus.ACTIVE.value,
    )
    if sponsorship_id is not None:
        query = query.where(SponsorshipSubscription.sponsorship_id == sponsorship_id)
    return (await db.execute(
        query.order_by(SponsorshipSubscription.end_date.desc()).limit(1)
    )).scalar_one_or_none()


async def _retire_expired(db, entity_type, entity_id, sponsorship_id, now: datetime) -> None:
    """Mark lapsed-but-still-active subscriptions for the triple as expired."""
    result = await db.execute(
        update(SponsorshipSubscription)
        .where(
            SponsorshipSubscription.entity_type == entity_type.value,
            SponsorshipSubscription.entity_id == entity_id,
            SponsorshipSubscription.sponsorship_id == sponsorship_id,
            SponsorshipSubscription.status == SubscriptionStatus.ACTIVE.value,
            SponsorshipSubscription.end_date <= now,
        )
        .values(status=SubscriptionStatus.EXPIRED.value, active_key=None, updated_at=now)
    )
    if result.rowcount:
        logger.info("Expired %d lapsed subscription(s) for %s %s", result.rowcount, entity_type.value, entity_id)


async def _get_request_for_update(db, **criteria) -> SponsorshipSubscriptionRequest | None:
    query = select(SponsorshipSubscriptionRequest).filter_by(**criteria).with_for_update()
    return (await db.execute(query)).scalar_one_or_none()


# ── Creation ───────────────────────────────────────────────

async def create_request(
    db: AsyncSession,
    gateway: WhishClient,
    user: User,
    data: SubscriptionRequestCreate,
    now: datetime | None = None,
) -> tuple[SponsorshipSubscriptionRequest, Sponsorship]:
    """
    File a sponsorship subscription request for an entity.

    Entity owners go through the payment gateway (status pending_payment and
    a collect URL on the request). Admins file on behalf of any entity and
    the request waits for approval (status pending).
    """
    now = now or datetime.utcnow()
    entity_type = normalize_entity_type(data.entity_type)
    resolved = await resolve_entity(db, entity_type, data.entity_id)
    ensure_entity_access(user, resolved)

    sponsorship = await get_sponsorship(db, data.sponsorship_id)
    if not sponsorship:
        raise HTTPException(status_code=404, detail="Sponsorship not found")
    if now < sponsorship.start_date or now > sponsorship.end_date:
        raise HTTPException(status_code=400, detail="Sponsorship is not currently available")

    await _retire_expired(db, entity_type, data.entity_id, sponsorship.id, now)

    if await _find_open_request(db, entity_type, data.entity_id, sponsorship.id):
        raise HTTPException(
            status_code=409,
            detail="A request for this sponsorship is already pending for this entity",
        )
    if await _find_active_subscription(db, entity_type, data.entity_id, sponsorship.id):
        raise HTTPException(
            status_code=409,
            detail="This entity already has an active subscription to this sponsorship",
        )

    req = SponsorshipSubscriptionRequest(
        id=uuid.uuid4(),
        sponsorship_id=sponsorship.id,
        entity_type=entity_type.value,
        entity_id=data.entity_id,
        entity_name=resolved.name,
        requested_by=user.id,
        requested_at=now,
        admin_note=data.admin_note,
        open_key=triple_key(entity_type, data.entity_id, sponsorship.id),
    )

    if user.user_type == UserType.ADMIN.value:
        req.status = RequestStatus.PENDING.value
    else:
        external_id = next_external_id()
        try:
            collect_url = await gateway.create_payment(
                amount=sponsorship.price,
                currency=settings.whish_currency,
                invoice=(
                    f"{ENTITY_LABELS[entity_type]} Sponsorship - {resolved.name}"
                    f" - Sponsorship: {sponsorship.title}"
                ),
                external_id=external_id,
                success_callback_url=f"{settings.base_url}{CALLBACK_PATH}/success",
                failure_callback_url=f"{settings.base_url}{CALLBACK_PATH}/failure",
                success_redirect_url=f"{settings.app_url}/payment-success?requestId={req.id}",
                failure_redirect_url=f"{settings.app_url}/payment-failed?requestId={req.id}",
            )
        except PaymentGatewayError as e:
            await db.rollback()
            logger.error("Whish payment creation failed for %s %s: %s", entity_type.value, data.entity_id, e)
            raise HTTPException(status_code=502, detail=f"Failed to create payment: {e}")

        req.status = RequestStatus.PENDING_PAYMENT.value
        req.payment_status = PaymentStatus.PENDING.value
        req.external_id = external_id
        req.collect_url = collect_url

    db.add(req)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=409,
            detail="A request for this sponsorship is already pending for this entity",
        )

    logger.info(
        "Sponsorship request %s created for %s %s (status=%s, externalId=%s)",
        req.id, entity_type.value, data.entity_id, req.status, req.external_id,
    )
    return req, sponsorship


# ── Activation ─────────────────────────────────────────────

async def _activate(
    db: AsyncSession,
    req: SponsorshipSubscriptionRequest,
    sponsorship: Sponsorship,
    now: datetime,
    credit_ledger: bool,
) -> SponsorshipSubscription:
    """Stage every activation write in the current transaction. Does not commit."""
    entity_type = normalize_entity_type(req.entity_type)

    if credit_ledger:
        await credit_income(
            db,
            sponsorship.price,
            f"Sponsorship income: {sponsorship.title} - {req.entity_name}",
            entity_id=sponsorship.id,
            entity_type=LEDGER_ENTITY_TYPE,
        )

    await _retire_expired(db, entity_type, req.entity_id, sponsorship.id, now)

    subscription = SponsorshipSubscription(
        sponsorship_id=sponsorship.id,
        request_id=req.id,
        entity_type=entity_type.value,
        entity_id=req.entity_id,
        start_date=now,
        end_date=now + timedelta(days=sponsorship.duration),
        status=SubscriptionStatus.ACTIVE.value,
        active_key=triple_key(entity_type, req.entity_id, sponsorship.id),
        auto_renew=False,
        discount_applied=sponsorship.discount or 0.0,
        created_at=now,
        updated_at=now,
    )
    db.add(subscription)

    if not await set_sponsorship_flag(db, entity_type, req.entity_id, True):
        raise HTTPException(status_code=404, detail=f"{ENTITY_LABELS[entity_type]} not found")

    await db.execute(
        update(Sponsorship)
        .where(Sponsorship.id == sponsorship.id)
        .values(used_count=Sponsorship.used_count + 1)
    )

    req.status = RequestStatus.APPROVED.value
    req.admin_approved = True
    req.approved_at = now
    req.processed_at = now
    req.open_key = None

    await db.flush()
    return subscription


# ── Payment callbacks ──────────────────────────────────────

def parse_external_id(raw: str | None) -> int:
    if raw is None or not raw.strip():
        raise HTTPException(status_code=400, detail="Missing externalId")
    try:
        return int(raw.strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid externalId")


def _already_paid(req: SponsorshipSubscriptionRequest) -> bool:
    return (
        req.payment_status == PaymentStatus.SUCCESS.value
        or req.status == RequestStatus.APPROVED.value
    )


def _is_active_key_violation(error: IntegrityError) -> bool:
    return "active_key" in str(error.orig)


async def _record_unactivated_payment(db: AsyncSession, external_id: int, now: datetime, reason) -> None:
    """Keep a gateway-verified payment on the request after activation was rolled back."""
    await db.rollback()
    req = await _get_request_for_update(db, external_id=external_id)
    if req is not None:
        req.payment_status = PaymentStatus.SUCCESS.value
        req.paid_at = now
        req.open_key = None
        await db.commit()
    logger.error(
        "Payment %s was verified by Whish but the subscription was not activated: %s",
        external_id, reason,
    )


async def handle_payment_success(
    db: AsyncSession,
    gateway: WhishClient,
    raw_external_id: str | None,
    now: datetime | None = None,
) -> str:
    """Verify a reported payment with the gateway and activate the subscription."""
    external_id = parse_external_id(raw_external_id)
    now = now or datetime.utcnow()

    req = await _get_request_for_update(db, external_id=external_id)
    if not req:
        raise HTTPException(status_code=404, detail="Sponsorship request not found")
    if _already_paid(req):
        logger.info("Duplicate success callback for externalId %s", external_id)
        return "Payment already processed"

    try:
        status, payer_phone = await gateway.get_payment_status(settings.whish_currency, external_id)
    except PaymentGatewayError as e:
        logger.error("Whish status check failed for externalId %s: %s", external_id, e)
        raise HTTPException(status_code=500, detail="Failed to verify payment status")

    if status != PaymentStatus.SUCCESS.value:
        req.status = RequestStatus.FAILED.value
        req.payment_status = PaymentStatus.FAILED.value
        req.processed_at = now
        req.open_key = None
        await db.commit()
        logger.warning("Payment %s reported as '%s' by Whish; request %s failed", external_id, status, req.id)
        raise HTTPException(status_code=400, detail=f"Payment not successful (status: {status or 'unknown'})")

    sponsorship = await get_sponsorship(db, req.sponsorship_id)
    if not sponsorship:
        await _record_unactivated_payment(db, external_id, now, "sponsorship not found")
        raise HTTPException(status_code=404, detail="Sponsorship not found")

    req.payment_status = PaymentStatus.SUCCESS.value
    req.paid_at = now
    try:
        subscription = await _activate(db, req, sponsorship, now, credit_ledger=True)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        current = await _get_request_for_update(db, external_id=external_id)
        if current and _already_paid(current):
            return "Payment already processed"
        await _record_unactivated_payment(db, external_id, now, str(e.orig))
        if _is_active_key_violation(e):
            raise HTTPException(
                status_code=409,
                detail="This entity already has an active subscription to this sponsorship",
            )
        raise HTTPException(status_code=500, detail="Failed to activate subscription")
    except HTTPException as e:
        await _record_unactivated_payment(db, external_id, now, e.detail)
        raise

    logger.info("Admin wallet credited %.2f for externalId %s", sponsorship.price, external_id)
    logger.info(
        "Payment %s verified (payer %s); subscription %s active until %s",
        external_id, payer_phone or "unknown", subscription.id, subscription.end_date,
    )
    await notify_admin(
        "Sponsorship payment received",
        f"{req.entity_name} paid {sponsorship.price} {settings.whish_currency} for \"{sponsorship.title}\"; "
        f"active until {subscription.end_date:%Y-%m-%d %H:%M} UTC.",
    )
    return "Payment processed successfully"


async def handle_payment_failure(
    db: AsyncSession,
    raw_external_id: str | None,
    now: datetime | None = None,
) -> str:
    external_id = parse_external_id(raw_external_id)
    now = now or datetime.utcnow()

    req = await _get_request_for_update(db, external_id=external_id)
    if not req:
        raise HTTPException(status_code=404, detail="Sponsorship request not found")
    if _already_paid(req):
        logger.warning("Failure callback for already paid externalId %s ignored", external_id)
        return "Payment already processed"
    if req.status == RequestStatus.FAILED.value:
        return "Payment failure recorded"

    req.status = RequestStatus.FAILED.value
    req.payment_status = PaymentStatus.FAILED.value
    req.processed_at = now
    req.open_key = None
    await db.commit()
    logger.info("Payment %s failed; request %s closed", external_id, req.id)
    return "Payment failure recorded"


# ── Admin approval ─────────────────────────────────────────

async def process_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    decision: RequestDecision,
    admin: User,
    now: datetime | None = None,
) -> SponsorshipSubscriptionRequest:
    now = now or datetime.utcnow()

    req = await _get_request_for_update(db, id=request_id)
    if not req:
        raise HTTPException(status_code=404, detail="Sponsorship request not found")
    if req.status != RequestStatus.PENDING.value:
        raise HTTPException(status_code=400, detail="Request has already been processed")

    if decision.admin_note is not None:
        req.admin_note = decision.admin_note

    if decision.status == RequestStatus.APPROVED.value:
        sponsorship = await get_sponsorship(db, req.sponsorship_id)
        if not sponsorship:
            raise HTTPException(status_code=404, detail="Sponsorship not found")
        req.approved_by = str(admin.id)
        credit_ledger = req.payment_status != PaymentStatus.SUCCESS.value
        try:
            await _activate(db, req, sponsorship, now, credit_ledger=credit_ledger)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            if not _is_active_key_violation(e):
                raise
            raise HTTPException(
                status_code=409,
                detail="This entity already has an active subscription to this sponsorship",
            )
        if credit_ledger:
            logger.info("Admin wallet credited %.2f for request %s", sponsorship.price, req.id)
    else:
        await set_sponsorship_flag(db, req.entity_type, req.entity_id, False)
        req.status = RequestStatus.REJECTED.value
        req.admin_approved = False
        req.rejected_by = str(admin.id)
        req.rejected_at = now
        req.processed_at = now
        req.open_key = None
        await db.commit()

    logger.info("Sponsorship request %s %s by admin %s", req.id, req.status, admin.id)
    await _notify_owner(db, req)
    return req


async def _notify_owner(db: AsyncSession, req: SponsorshipSubscriptionRequest) -> None:
    resolved = await find_entity(db, req.entity_type, req.entity_id)
    if resolved is None or resolved.owner_user_id is None:
        return
    owner = (await db.execute(select(User).where(User.id == resolved.owner_user_id))).scalar_one_or_none()
    if owner is None:
        return
    verdict = "approved" if req.status == RequestStatus.APPROVED.value else "rejected"
    body = f"Your sponsorship request for {req.entity_name} has been {verdict}."
    if req.admin_note:
        body += f"\n\nNote from the admin: {req.admin_note}"
    await send_email(owner.email, f"Sponsorship request {verdict}", body)


# ── Remaining time ─────────────────────────────────────────

async def remaining_time(
    db: AsyncSession,
    entity_type: EntityType | str,
    entity_id: uuid.UUID,
    now: datetime | None = None,
) -> RemainingTimeResponse:
    """Time left on the entity's active sponsorship. Never changes stored status."""
    now = now or datetime.utcnow()
    entity_type = normalize_entity_type(entity_type)

    subscription = await _find_active_subscription(db, entity_type, entity_id)
    if subscription is None:
        return RemainingTimeResponse(
            has_active_subscription=False,
            message="No active sponsorship subscription found",
            entity_type=entity_type.value,
        )

    remaining = subscription.end_date - now
    if remaining.total_seconds() <= 0:
        return RemainingTimeResponse(
            has_active_subscription=False,
            message="Sponsorship subscription has expired",
            entity_type=entity_type.value,
            subscription=SubscriptionResponse.model_validate(subscription),
        )

    total_seconds = int(remaining.total_seconds())
    days, rem = divmod(total_seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)

    span = (subscription.end_date - subscription.start_date).total_seconds()
    elapsed = (now - subscription.start_date).total_seconds()
    percentage_used = round(min(max(elapsed / span * 100, 0.0), 100.0), 1) if span > 0 else 100.0

    sponsorship = await get_sponsorship(db, subscription.sponsorship_id)
    resolved = await find_entity(db, entity_type, entity_id)

    return RemainingTimeResponse(
        has_active_subscription=True,
        entity_type=entity_type.value,
        time_remaining=TimeRemaining(
            days=days,
            hours=hours,
            minutes=minutes,
            seconds=seconds,
            total_seconds=total_seconds,
            formatted=f"{days}d {hours}h {minutes}m {seconds}s",
            human=format_time_remaining(remaining),
            percentage_used=percentage_used,
            start_date=subscription.start_date,
            end_date=subscription.end_date,
        ),
        subscription=SubscriptionResponse.model_validate(subscription),
        sponsorship=sponsorship_out(sponsorship) if sponsorship else None,
        entity_info=resolved.details() if resolved else None,
    )


def sponsorship_out(sponsorship: Sponsorship) -> SponsorshipResponse:
    out = SponsorshipResponse.model_validate(sponsorship)
    out.duration_info = duration_info(sponsorship.duration)
    return out


# ── Listings ───────────────────────────────────────────────

async def list_pending_requests(
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    entity_type: EntityType | None = None,
) -> tuple[list[dict], int]:
    """Requests awaiting admin approval, newest first, with sponsorship and entity details."""
    criteria = [SponsorshipSubscriptionRequest.status == RequestStatus.PENDING.value]
    if entity_type is not None:
        criteria.append(SponsorshipSubscriptionRequest.entity_type == normalize_entity_type(entity_type).value)

    total = await db.scalar(
        select(func.count()).select_from(SponsorshipSubscriptionRequest).where(*criteria)
    ) or 0
    rows = (await db.execute(
        select(SponsorshipSubscriptionRequest)
        .where(*criteria)
        .order_by(SponsorshipSubscriptionRequest.requested_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )).scalars().all()

    items = []
    for req in rows:
        sponsorship = await get_sponsorship(db, req.sponsorship_id)
        resolved = await find_entity(db, req.entity_type, req.entity_id)
        items.append({
            "request": req,
            "sponsorship": sponsorship_out(sponsorship) if sponsorship else None,
            "entity_details": resolved.details() if resolved else None,
        })
    return items, total


async def list_active_subscriptions(
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    entity_type: EntityType | None = None,
    sponsorship_id: uuid.UUID | None = None,
) -> tuple[list[SponsorshipSubscription], int]:
    criteria = [SponsorshipSubscription.status == SubscriptionStatus.ACTIVE.value]
    if entity_type is not None:
        criteria.append(SponsorshipSubscription.entity_type == normalize_entity_type(entity_type).value)
    if sponsorship_id is not None:
        criteria.append(SponsorshipSubscription.sponsorship_id == sponsorship_id)

    total = await db.scalar(
        select(func.count()).select_from(SponsorshipSubscription).where(*criteria)
    ) or 0
    rows = (await db.execute(
        select(SponsorshipSubscription)
        .where(*criteria)
        .order_by(SponsorshipSubscription.end_date.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )).scalars().all()
    return list(rows), total


async def list_entity_requests(
    db: AsyncSession,
    user: User,
    entity_type: EntityType | str,
    entity_id: uuid.UUID,
) -> list[SponsorshipSubscriptionRequest]:
    entity_type = normalize_entity_type(entity_type)
    resolved = await resolve_entity(db, entity_type, entity_id)
    ensure_entity_access(user, resolved)
    rows = (await db.execute(
        select(SponsorshipSubscriptionRequest)
        .where(
            SponsorshipSubscriptionRequest.entity_type == entity_type.value,
            SponsorshipSubscriptionRequest.entity_id == entity_id,
        )
        .order_by(SponsorshipSubscriptionRequest.requested_at.desc())
    )).scalars().all()
    return list(rows)
