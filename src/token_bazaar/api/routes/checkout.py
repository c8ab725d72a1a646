"""Checkout REST API routes.

Routes:
    POST   /api/v1/checkout/orders   — Reserve a listing and open a gateway order
    POST   /api/v1/checkout/verify   — Verify the payment signature and settle
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from token_bazaar.api.deps import get_orchestrator
from token_bazaar.schemas.marketplace import (
    CreateOrderRequest,
    CreateOrderResponse,
    SettlementResponse,
    VerifyPaymentRequest,
)
from token_bazaar.services.settlement_service import SettlementOrchestrator

router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout"])


@router.post(
    "/orders",
    response_model=CreateOrderResponse,
    summary="Create a payment order for a listing",
)
async def create_order(
    request: CreateOrderRequest,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> CreateOrderResponse:
    """Holds the listing's purchase lock until the payment is verified or rejected."""
    order = await orchestrator.create_order(request.listing_id, request.buyer_address)
    return CreateOrderResponse.model_validate(order)


@router.post(
    "/verify",
    response_model=SettlementResponse,
    summary="Verify payment and release tokens",
)
async def verify_payment(
    request: VerifyPaymentRequest,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> SettlementResponse:
    result = await orchestrator.verify_payment(
        order_id=request.order_id,
        payment_id=request.payment_id,
        signature=request.signature,
        listing_id=request.listing_id,
        buyer_address=request.buyer_address,
    )
    return SettlementResponse.model_validate(result)
