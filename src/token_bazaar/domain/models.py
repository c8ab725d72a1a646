"""Marketplace entities.

Plain dataclasses shared by every store implementation. Token quantities
are decimal strings and money is Decimal; nothing here is ever a float.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from token_bazaar.domain.enums import ListingStatus, PayoutStatus, TransactionStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


def compute_discount_percent(asking_price: Decimal, market_price: Decimal) -> Decimal:
    """Discount of the asking price against the market price, one decimal place.

    A listing priced above market has no discount rather than a negative one.
    """
    if market_price <= 0:
        return Decimal("0.0")
    discount = (market_price - asking_price) / market_price * 100
    discount = discount.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return max(discount, Decimal("0.0"))


@dataclass
class TokenInfo:
    """Identity of the fungible token being sold."""

    address: str
    symbol: str
    name: str
    decimals: int


@dataclass
class Listing:
    """A seller's standing offer to sell a fixed token quantity for a fixed price."""

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
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    buyer_address: str | None = None


@dataclass
class Transaction:
    """One buyer's settlement attempt against a listing."""

    id: str
    listing_id: str
    buyer_address: str
    seller_address: str
    token_symbol: str
    token_amount: str
    amount: Decimal
    gateway_order_id: str
    status: TransactionStatus
    created_at: datetime
    gateway_payment_id: str | None = None
    release_tx_hash: str | None = None


@dataclass
class Payout:
    """The seller's recorded entitlement to proceeds after a sale settles."""

    id: str
    seller_address: str
    amount: Decimal
    status: PayoutStatus
    transaction_id: str
    created_at: datetime


@dataclass(frozen=True)
class GatewayOrder:
    """Order handle returned by the payment gateway."""

    id: str
    amount: int
    currency: str
    receipt: str


@dataclass(frozen=True)
class CheckoutOrder:
    """What the buyer needs to open the hosted checkout."""

    order_id: str
    amount: int
    currency: str
    transaction_id: str
    key_id: str


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of a payment verification or release retry."""

    success: bool
    message: str
    transaction_id: str
    release_tx_hash: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "release_tx_hash": self.release_tx_hash,
            "transaction_id": self.transaction_id,
        }


def to_minor_units(amount: Decimal, factor: int) -> int:
    """Convert a settlement-currency amount to integer gateway subunits.

    Rounds half-up to the nearest subunit: Decimal("380.005") at factor 100
    becomes 38001.
    """
    return int((amount * factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
