"""Pydantic API schemas."""

from token_bazaar.schemas.marketplace import (
    CancelListingRequest,
    CreateListingRequest,
    CreateOrderRequest,
    CreateOrderResponse,
    HealthResponse,
    ListingResponse,
    PayoutResponse,
    SettlementResponse,
    TransactionResponse,
    VerifyPaymentRequest,
)

__all__ = [
    "CancelListingRequest",
    "CreateListingRequest",
    "CreateOrderRequest",
    "CreateOrderResponse",
    "HealthResponse",
    "ListingResponse",
    "PayoutResponse",
    "SettlementResponse",
    "TransactionResponse",
    "VerifyPaymentRequest",
]
