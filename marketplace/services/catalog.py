"""
Sponsorship catalog helpers: duration breakdown and reference checks.
"""

import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.sponsorship import (
    Sponsorship, SponsorshipSubscriptionRequest, SponsorshipSubscription,
)
from marketplace.schemas.sponsorship import DurationInfo, MIN_DURATION_DAYS, MAX_DURATION_DAYS

RECOMMENDED_DURATIONS = [7, 30, 90, 180, 365]


def duration_description(days: int) -> str:
    if days == 1:
        return "1 day"
    if days == 7:
        return "1 week"
    if days == 30:
        return "1 month"
    if days == 365:
        return "1 year"
    if days % 365 == 0:
        return f"{days // 365} years"
    if days % 30 == 0:
        return f"{days // 30} months"
    if days % 7 == 0:
        return f"{days // 7} weeks"
    return f"{days} days"


def duration_info(days: int) -> DurationInfo:
    """Break a duration in days into weeks/months/years and pick a display unit."""
    if days < MIN_DURATION_DAYS or days > MAX_DURATION_DAYS:
        return DurationInfo(days=days)

    if days >= 365:
        unit = "years"
    elif days >= 30:
        unit = "months"
    elif days >= 7:
        unit = "weeks"
    else:
        unit = "days"

    return DurationInfo(
        days=days,
        weeks=days // 7,
        months=days // 30,
        years=days // 365,
        unit=unit,
        is_valid=True,
        description=duration_description(days),
    )


async def is_referenced(db: AsyncSession, sponsorship_id: uuid.UUID) -> bool:
    """True once any request or subscription points at the sponsorship."""
    requests = await db.scalar(
        select(func.count()).select_from(SponsorshipSubscriptionRequest)
        .where(SponsorshipSubscriptionRequest.sponsorship_id == sponsorship_id)
    )
    if requests:
        return True
    subscriptions = await db.scalar(
        select(func.count()).select_from(SponsorshipSubscription)
        .where(SponsorshipSubscription.sponsorship_id == sponsorship_id)
    )
    return bool(subscriptions)


async def get_sponsorship(db: AsyncSession, sponsorship_id: uuid.UUID) -> Sponsorship | None:
    return (await db.execute(
        select(Sponsorship).where(Sponsorship.id == sponsorship_id)
    )).scalar_one_or_none()
