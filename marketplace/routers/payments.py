"""
Whish payment endpoints.

Callbacks are hit by the gateway (GET with ``?externalId=``) and answer in
plain text; the status code is what the gateway acts on.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.db.database import get_db
from marketplace.models.user import User
from marketplace.schemas import Envelope, envelope
from marketplace.schemas.rewards import GatewayBalanceResponse
from marketplace.services.security import require_admin
from marketplace.services.sponsorship import handle_payment_success, handle_payment_failure
from marketplace.services.whish import WhishClient, PaymentGatewayError, get_payment_gateway

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/whish/sponsorship/callback/success", response_class=PlainTextResponse)
async def sponsorship_payment_success(
    external_id: str | None = Query(None, alias="externalId"),
    db: AsyncSession = Depends(get_db),
    gateway: WhishClient = Depends(get_payment_gateway),
):
    logger.info("Whish success callback: externalId=%s", external_id)
    try:
        message = await handle_payment_success(db, gateway, external_id)
    except HTTPException as e:
        return PlainTextResponse(str(e.detail), status_code=e.status_code)
    return PlainTextResponse(message)


@router.get("/whish/sponsorship/callback/failure", response_class=PlainTextResponse)
async def sponsorship_payment_failure(
    external_id: str | None = Query(None, alias="externalId"),
    db: AsyncSession = Depends(get_db),
):
    logger.info("Whish failure callback: externalId=%s", external_id)
    try:
        message = await handle_payment_failure(db, external_id)
    except HTTPException as e:
        return PlainTextResponse(str(e.detail), status_code=e.status_code)
    return PlainTextResponse(message)


# ── Merchant account (admin) ───────────────────────────────

@router.get("/whish/balance", response_model=Envelope[GatewayBalanceResponse])
async def merchant_balance(
    _: User = Depends(require_admin),
    gateway: WhishClient = Depends(get_payment_gateway),
):
    try:
        balance = await gateway.get_balance()
    except PaymentGatewayError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch Whish balance: {e}")
    return envelope("Whish balance retrieved", {"balance": balance, "currency": settings.whish_currency})


@router.get("/whish/rate", response_model=Envelope[dict])
async def payment_rate(
    amount: float = Query(..., gt=0),
    _: User = Depends(require_admin),
    gateway: WhishClient = Depends(get_payment_gateway),
):
    """Fee the gateway would deduct from an invoice of ``amount``."""
    try:
        rate = await gateway.get_rate(amount, settings.whish_currency)
    except PaymentGatewayError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch Whish rate: {e}")
    return envelope("Whish rate retrieved", {
        "amount": amount,
        "currency": settings.whish_currency,
        "rate": rate,
    })
