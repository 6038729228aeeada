"""Tests for filing sponsorship subscription requests."""

from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy import select, func

from marketplace.models import SponsorshipSubscriptionRequest, SponsorshipSubscription
from marketplace.schemas.sponsorship import SubscriptionRequestCreate
from marketplace.services.sponsorship import (
    create_request, handle_payment_failure, next_external_id, triple_key,
)


async def _request_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(SponsorshipSubscriptionRequest))


def _payload(sponsorship, entity_id, entity_type="company_branch"):
    return SubscriptionRequestCreate(
        sponsorship_id=sponsorship.id,
        entity_type=entity_type,
        entity_id=entity_id,
    )


@pytest.mark.asyncio
async def test_owner_request_goes_to_payment(db, factory, gateway):
    """Owner request should be pending_payment with a collect URL from the gateway."""
    owner, company, branch = await factory.company_branch()
    sponsorship = await factory.sponsorship(price=49.99)

    req, returned = await create_request(db, gateway, owner, _payload(sponsorship, branch.id))

    assert returned.id == sponsorship.id
    assert req.status == "pending_payment"
    assert req.payment_status == "pending"
    assert req.collect_url == f"https://pay.whish.test/collect/{req.external_id}"
    assert req.entity_name == "Acme - Downtown"
    assert req.open_key == triple_key("company_branch", branch.id, sponsorship.id)

    call = gateway.created[0]
    assert call["amount"] == 49.99
    assert call["currency"] == "USD"
    assert call["external_id"] == req.external_id
    assert call["success_callback_url"].endswith("/api/payments/whish/sponsorship/callback/success")
    assert call["failure_callback_url"].endswith("/api/payments/whish/sponsorship/callback/failure")
    assert f"requestId={req.id}" in call["success_redirect_url"]
    assert "Acme - Downtown" in call["invoice"]


@pytest.mark.asyncio
async def test_duplicate_pending_request_conflicts(db, factory, gateway):
    """A second request while one is pending should 409 and create nothing."""
    owner, _, branch = await factory.company_branch()
    sponsorship = await factory.sponsorship()

    await create_request(db, gateway, owner, _payload(sponsorship, branch.id))

    with pytest.raises(HTTPException) as exc:
        await create_request(db, gateway, owner, _payload(sponsorship, branch.id))

    assert exc.value.status_code == 409
    assert await _request_count(db) == 1
    assert len(gateway.created) == 1


@pytest.mark.asyncio
async def test_active_subscription_conflicts(db, factory, gateway):
    """An active subscription for the same sponsorship blocks a new request."""
    owner, _, branch = await factory.company_branch()
    sponsorship = await factory.sponsorship()
    now = datetime.utcnow()
    db.add(SponsorshipSubscription(
        sponsorship_id=sponsorship.id,
        entity_type="company_branch",
        entity_id=branch.id,
        start_date=now,
        end_date=now + timedelta(days=30),
        status="active",
        active_key=triple_key("company_branch", branch.id, sponsorship.id),
    ))
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await create_request(db, gateway, owner, _payload(sponsorship, branch.id))

    assert exc.value.status_code == 409
    assert await _request_count(db) == 0


@pytest.mark.asyncio
async def test_lapsed_subscription_is_retired(db, factory, gateway):
    """A subscription past its end date no longer blocks and is marked expired."""
    owner, _, branch = await factory.company_branch()
    sponsorship = await factory.sponsorship()
    now = datetime.utcnow()
    old = SponsorshipSubscription(
        sponsorship_id=sponsorship.id,
        entity_type="company_branch",
        entity_id=branch.id,
        start_date=now - timedelta(days=40),
        end_date=now - timedelta(days=10),
        status="active",
        active_key=triple_key("company_branch", branch.id, sponsorship.id),
    )
    db.add(old)
    await db.commit()

    req, _ = await create_request(db, gateway, owner, _payload(sponsorship, branch.id), now=now)

    await db.refresh(old)
    assert req.status == "pending_payment"
    assert old.status == "expired"
    assert old.active_key is None


@pytest.mark.asyncio
async def test_other_sponsorship_does_not_conflict(db, factory, gateway):
    owner, _, branch = await factory.company_branch()
    gold = await factory.sponsorship(title="Gold")
    silver = await factory.sponsorship(title="Silver")

    await create_request(db, gateway, owner, _payload(gold, branch.id))
    await create_request(db, gateway, owner, _payload(silver, branch.id))

    assert await _request_count(db) == 2


@pytest.mark.asyncio
async def test_admin_request_waits_for_approval(db, factory, gateway):
    """Admin-filed request skips the gateway and stays pending."""
    admin = await factory.admin()
    _, provider = await factory.service_provider()
    sponsorship = await factory.sponsorship()

    req, _ = await create_request(db, gateway, admin, _payload(sponsorship, provider.id, "serviceProvider"))

    assert req.status == "pending"
    assert req.payment_status is None
    assert req.external_id is None
    assert req.entity_type == "service_provider"
    assert req.entity_name == "Fix It"
    assert gateway.created == []


@pytest.mark.asyncio
async def test_non_owner_is_forbidden(db, factory, gateway):
    _, _, branch = await factory.company_branch()
    stranger = await factory.user("company")
    sponsorship = await factory.sponsorship()

    with pytest.raises(HTTPException) as exc:
        await create_request(db, gateway, stranger, _payload(sponsorship, branch.id))
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_unknown_entity_and_sponsorship(db, factory, gateway):
    owner, _, branch = await factory.company_branch()
    sponsorship = await factory.sponsorship()

    with pytest.raises(HTTPException) as exc:
        await create_request(db, gateway, owner, _payload(sponsorship, sponsorship.id))
    assert exc.value.status_code == 404

    payload = _payload(sponsorship, branch.id)
    payload.sponsorship_id = branch.id
    with pytest.raises(HTTPException) as exc:
        await create_request(db, gateway, owner, payload)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_sponsorship_outside_window(db, factory, gateway):
    """Sponsorships can only be requested between their start and end dates."""
    owner, _, branch = await factory.company_branch()
    now = datetime.utcnow()
    future = await factory.sponsorship(start=now + timedelta(days=5), end=now + timedelta(days=50))

    with pytest.raises(HTTPException) as exc:
        await create_request(db, gateway, owner, _payload(future, branch.id), now=now)
    assert exc.value.status_code == 400
    assert await _request_count(db) == 0


@pytest.mark.asyncio
async def test_gateway_failure_creates_nothing(db, factory, gateway):
    owner, _, branch = await factory.company_branch()
    sponsorship = await factory.sponsorship()
    gateway.fail_create = True

    with pytest.raises(HTTPException) as exc:
        await create_request(db, gateway, owner, _payload(sponsorship, branch.id))

    assert exc.value.status_code == 502
    assert await _request_count(db) == 0


@pytest.mark.asyncio
async def test_failed_payment_frees_the_slot(db, factory, gateway):
    """After a failure callback the owner can request the same sponsorship again."""
    owner, _, branch = await factory.wholesaler_branch()
    sponsorship = await factory.sponsorship()

    first, _ = await create_request(db, gateway, owner, _payload(sponsorship, branch.id, "wholesaler_branch"))
    await handle_payment_failure(db, str(first.external_id))
    second, _ = await create_request(db, gateway, owner, _payload(sponsorship, branch.id, "wholesaler_branch"))

    assert first.status == "failed"
    assert first.open_key is None
    assert second.status == "pending_payment"
    assert second.external_id > first.external_id
    assert second.entity_name == "Bulk Co - Port"


def test_external_ids_strictly_increase():
    """Two ids minted in the same millisecond must still differ."""
    first = next_external_id(now_ms=1_700_000_000_000)
    second = next_external_id(now_ms=1_700_000_000_000)
    third = next_external_id(now_ms=1)
    assert first < second < third
