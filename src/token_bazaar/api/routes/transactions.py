"""Transaction history, escrow retry and seller payout routes.

Routes:
    GET    /api/v1/transactions?address=        — Buyer or seller history
    POST   /api/v1/transactions/{id}/release    — Retry a failed escrow release
    GET    /api/v1/payouts?seller=              — Seller payouts
    POST   /api/v1/payouts/{id}/advance         — PENDING -> PROCESSING -> COMPLETED
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from token_bazaar.api.deps import get_marketplace, get_orchestrator
from token_bazaar.schemas.marketplace import (
    PayoutResponse,
    SettlementResponse,
    TransactionResponse,
)
from token_bazaar.services.marketplace_service import MarketplaceService
from token_bazaar.services.settlement_service import SettlementOrchestrator

router = APIRouter(prefix="/api/v1", tags=["Transactions"])


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@router.get(
    "/transactions",
    response_model=list[TransactionResponse],
    summary="List transactions for an address",
)
async def list_transactions(
    address: str = Query(..., min_length=1),
    svc: MarketplaceService = Depends(get_marketplace),
) -> list[TransactionResponse]:
    transactions = await svc.list_transactions(address)
    return [TransactionResponse.model_validate(tx) for tx in transactions]


@router.post(
    "/transactions/{transaction_id}/release",
    response_model=SettlementResponse,
    summary="Retry escrow release",
)
async def retry_release(
    transaction_id: str,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> SettlementResponse:
    """Only PAID transactions whose listing was sold to the same buyer qualify."""
    result = await orchestrator.retry_release(transaction_id)
    return SettlementResponse.model_validate(result)


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


@router.get(
    "/payouts",
    response_model=list[PayoutResponse],
    summary="List payouts for a seller",
)
async def list_payouts(
    seller: str = Query(..., min_length=1),
    svc: MarketplaceService = Depends(get_marketplace),
) -> list[PayoutResponse]:
    payouts = await svc.list_payouts(seller)
    return [PayoutResponse.model_validate(payout) for payout in payouts]


@router.post(
    "/payouts/{payout_id}/advance",
    response_model=PayoutResponse,
    summary="Advance a payout one step",
)
async def advance_payout(
    payout_id: str,
    svc: MarketplaceService = Depends(get_marketplace),
) -> PayoutResponse:
    payout = await svc.advance_payout(payout_id)
    return PayoutResponse.model_validate(payout)
