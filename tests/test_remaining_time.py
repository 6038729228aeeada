"""Tests for the remaining-time query and its formatting."""

from datetime import datetime, timedelta

import pytest

from marketplace.models import SponsorshipSubscription
from marketplace.services.sponsorship import format_time_remaining, remaining_time, triple_key


def test_format_days():
    assert format_time_remaining(timedelta(days=3, hours=4, minutes=5)) == "3 days, 4 hours"
    assert format_time_remaining(timedelta(days=1, hours=2)) == "1 day, 2 hours"


def test_format_hours_minutes_seconds():
    assert format_time_remaining(timedelta(hours=5, minutes=12)) == "5 hours, 12 minutes"
    assert format_time_remaining(timedelta(hours=1, minutes=1)) == "1 hour, 1 minute"
    assert format_time_remaining(timedelta(minutes=7, seconds=3)) == "7 minutes, 3 seconds"
    assert format_time_remaining(timedelta(seconds=42)) == "42 seconds"


def test_format_singular_units():
    assert format_time_remaining(timedelta(days=2, hours=1)) == "2 days, 1 hour"
    assert format_time_remaining(timedelta(minutes=1, seconds=1)) == "1 minute, 1 second"
    assert format_time_remaining(timedelta(seconds=1)) == "1 second"
    assert format_time_remaining(timedelta(hours=3)) == "3 hours, 0 minutes"


def test_format_expired():
    assert format_time_remaining(timedelta(0)) == "Expired"
    assert format_time_remaining(timedelta(seconds=-5)) == "Expired"


async def _subscription(db, factory, start, end):
    _, _, branch = await factory.company_branch()
    sponsorship = await factory.sponsorship(duration=(end - start).days or 1)
    sub = SponsorshipSubscription(
        sponsorship_id=sponsorship.id,
        entity_type="company_branch",
        entity_id=branch.id,
        start_date=start,
        end_date=end,
        status="active",
        active_key=triple_key("company_branch", branch.id, sponsorship.id),
    )
    db.add(sub)
    await db.commit()
    return sub, branch


@pytest.mark.asyncio
async def test_active_subscription_breakdown(db, factory):
    start = datetime(2026, 1, 1)
    end = start + timedelta(days=30)
    now = start + timedelta(days=10, hours=6)
    sub, branch = await _subscription(db, factory, start, end)

    result = await remaining_time(db, "company_branch", branch.id, now=now)

    assert result.has_active_subscription is True
    tr = result.time_remaining
    assert (tr.days, tr.hours, tr.minutes, tr.seconds) == (19, 18, 0, 0)
    assert tr.total_seconds == 19 * 86400 + 18 * 3600
    assert tr.formatted == "19d 18h 0m 0s"
    assert tr.human == "19 days, 18 hours"
    assert tr.percentage_used == pytest.approx(34.2)
    assert result.subscription.id == sub.id
    assert result.sponsorship is not None
    assert result.entity_info["name"] == "Downtown"


@pytest.mark.asyncio
async def test_expired_subscription_reports_inactive(db, factory):
    """Past end date reads as no active subscription and leaves the row alone."""
    start = datetime(2026, 1, 1)
    sub, branch = await _subscription(db, factory, start, start + timedelta(days=7))

    result = await remaining_time(db, "companyBranch", branch.id, now=start + timedelta(days=8))

    assert result.has_active_subscription is False
    assert result.time_remaining is None
    await db.refresh(sub)
    assert sub.status == "active"


@pytest.mark.asyncio
async def test_no_subscription(db, factory):
    _, provider = await factory.service_provider()

    result = await remaining_time(db, "service_provider", provider.id)

    assert result.has_active_subscription is False
    assert result.entity_type == "service_provider"
    assert result.subscription is None
