"""Pydantic schemas for the marketplace API.

These schemas define the request/response shapes for the REST API. They are
separate from the domain dataclasses and ORM rows. JSON field names are
camelCase to match what the marketplace front end exchanges; snake_case
names are accepted on input as well.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - resolved at runtime by pydantic
from decimal import Decimal  # noqa: TC003 - resolved at runtime by pydantic

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
DECIMAL_STRING_PATTERN = r"^\d+(\.\d+)?$"


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, attribute access from dataclasses."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateListingRequest(CamelModel):
    """Seller request to list tokens for sale."""

    token_address: str = Field(
        ...,
        pattern=ADDRESS_PATTERN,
        description="ERC-20 contract address of the token",
        examples=["0x0000000000000000000000000000000000000001"],
    )
    token_symbol: str = Field(..., min_length=1, max_length=32, examples=["USDT"])
    token_name: str = Field(..., min_length=1, max_length=128, examples=["Tether USD"])
    token_decimals: int = Field(..., ge=0, le=36, examples=[6])
    token_amount: str = Field(
        ...,
        pattern=DECIMAL_STRING_PATTERN,
        description="Token quantity as a decimal string (never a float)",
        examples=["500"],
    )
    seller_address: str = Field(..., pattern=ADDRESS_PATTERN)
    asking_price: Decimal = Field(..., gt=0, decimal_places=2, examples=["38000"])
    market_price: Decimal = Field(..., gt=0, decimal_places=2, examples=["42000"])


class CancelListingRequest(CamelModel):
    """Seller request to withdraw an OPEN listing."""

    seller_address: str = Field(..., pattern=ADDRESS_PATTERN)


class CreateOrderRequest(CamelModel):
    """Buyer request to start checkout for a listing."""

    listing_id: str = Field(..., min_length=1)
    buyer_address: str = Field(..., pattern=ADDRESS_PATTERN)


class VerifyPaymentRequest(CamelModel):
    """Payment confirmation relayed by the client after hosted checkout.

    Accepts the gateway's own callback keys (razorpay_order_id, ...) too.
    """

    order_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("orderId", "order_id", "razorpay_order_id"),
    )
    payment_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("paymentId", "payment_id", "razorpay_payment_id"),
    )
    signature: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("signature", "razorpay_signature"),
    )
    listing_id: str = Field(..., min_length=1)
    buyer_address: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class ListingResponse(CamelModel):
    id: str
    token_address: str
    token_symbol: str
    token_name: str
    token_decimals: int
    token_amount: str
    seller_address: str
    asking_price: Decimal
    market_price: Decimal
    discount_percent: Decimal
    status: str
    created_at: datetime
    updated_at: datetime
    buyer_address: str | None = None


class TransactionResponse(CamelModel):
    id: str
    listing_id: str
    buyer_address: str
    seller_address: str
    token_symbol: str
    token_amount: str
    amount: Decimal
    gateway_order_id: str
    gateway_payment_id: str | None = None
    release_tx_hash: str | None = None
    status: str
    created_at: datetime


class PayoutResponse(CamelModel):
    id: str
    seller_address: str
    amount: Decimal
    status: str
    transaction_id: str
    created_at: datetime


class CreateOrderResponse(CamelModel):
    """Everything the hosted checkout widget needs."""

    order_id: str
    amount: int = Field(description="Amount in minor currency units")
    currency: str
    transaction_id: str
    key_id: str = Field(description="Gateway public key id for the checkout widget")


class SettlementResponse(CamelModel):
    success: bool
    message: str
    release_tx_hash: str | None = None
    transaction_id: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    store: str = "unknown"
    lock: str = "unknown"
    escrow: str = "unknown"
