"""Admin wallet endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.database import get_db
from marketplace.models.user import User
from marketplace.schemas import Envelope, Page, envelope, paginate
from marketplace.schemas.rewards import WalletBalanceResponse, WalletTransactionResponse
from marketplace.services import wallet
from marketplace.services.security import require_admin

router = APIRouter()


@router.get("/wallet", response_model=Envelope[WalletBalanceResponse])
async def get_wallet_balance(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return envelope("Wallet balance retrieved", await wallet.get_balance(db))


@router.get("/wallet/transactions", response_model=Envelope[Page[WalletTransactionResponse]])
async def list_wallet_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    tx_type: str | None = Query(None, alias="type"),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await wallet.list_transactions(db, page, limit, tx_type)
    return envelope("Wallet transactions retrieved", paginate(rows, page, limit, total))
