"""Tests for sponsorship catalog validation and duration breakdown."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from marketplace.schemas.sponsorship import SponsorshipCreate
from marketplace.services.catalog import duration_info, is_referenced, RECOMMENDED_DURATIONS


def test_duration_units():
    assert duration_info(3).unit == "days"
    assert duration_info(7).unit == "weeks"
    assert duration_info(90).unit == "months"
    assert duration_info(365).unit == "years"


def test_duration_breakdown():
    info = duration_info(45)
    assert (info.days, info.weeks, info.months, info.years) == (45, 6, 1, 0)
    assert info.is_valid is True
    assert info.description == "45 days"
    assert duration_info(30).description == "1 month"
    assert duration_info(180).description == "6 months"
    assert duration_info(14).description == "2 weeks"


@pytest.mark.parametrize("days", [0, -1, 366])
def test_duration_out_of_range(days):
    info = duration_info(days)
    assert info.is_valid is False
    assert info.description == "Invalid duration"


def test_recommended_presets():
    assert RECOMMENDED_DURATIONS == [7, 30, 90, 180, 365]
    assert all(duration_info(d).is_valid for d in RECOMMENDED_DURATIONS)


def _create(**overrides):
    now = datetime(2026, 1, 1)
    data = {
        "title": "Gold",
        "price": 100.0,
        "duration": 30,
        "discount": 0,
        "startDate": now,
        "endDate": now + timedelta(days=60),
    }
    data.update(overrides)
    return SponsorshipCreate.model_validate(data)


def test_create_accepts_camel_case():
    created = _create()
    assert created.start_date == datetime(2026, 1, 1)


@pytest.mark.parametrize("field, value", [
    ("price", 0),
    ("duration", 0),
    ("duration", 366),
    ("discount", 101),
    ("title", ""),
])
def test_create_rejects_bad_values(field, value):
    with pytest.raises(ValidationError):
        _create(**{field: value})


def test_create_rejects_inverted_window():
    with pytest.raises(ValidationError):
        _create(endDate=datetime(2025, 12, 1))


def test_aware_dates_are_stored_as_naive_utc():
    created = _create(
        startDate=datetime(2026, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2))),
        endDate=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )
    assert created.start_date == datetime(2026, 1, 1, 0, 0)
    assert created.start_date.tzinfo is None


@pytest.mark.asyncio
async def test_reference_check(db, factory, gateway):
    from marketplace.schemas.sponsorship import SubscriptionRequestCreate
    from marketplace.services.sponsorship import create_request

    owner, _, branch = await factory.company_branch()
    sponsorship = await factory.sponsorship()
    assert await is_referenced(db, sponsorship.id) is False

    await create_request(
        db, gateway, owner,
        SubscriptionRequestCreate(sponsorship_id=sponsorship.id, entity_type="company_branch", entity_id=branch.id),
    )
    assert await is_referenced(db, sponsorship.id) is True
