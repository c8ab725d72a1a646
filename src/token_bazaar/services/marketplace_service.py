"""Marketplace Service — listing creation, read paths and payout progress.

Nothing here touches settlement state: listing status changes after
creation belong to the SettlementOrchestrator.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from token_bazaar.domain.enums import PayoutStatus
from token_bazaar.domain.exceptions import (
    InvalidRequestError,
    InvalidStateTransitionError,
    ListingNotFoundError,
    PayoutNotFoundError,
)
from token_bazaar.domain.models import compute_discount_percent
from token_bazaar.domain.state_machine import validate_transition
from token_bazaar.logging_config import get_logger

if TYPE_CHECKING:
    from token_bazaar.domain.enums import ListingStatus
    from token_bazaar.domain.models import Listing, Payout, TokenInfo, Transaction
    from token_bazaar.domain.protocols import ListingStore, PayoutStore, TransactionLedger

logger = get_logger(__name__)

_PAYOUT_EVENTS = {
    PayoutStatus.PENDING: "start_processing",
    PayoutStatus.PROCESSING: "complete",
}


class MarketplaceService:
    """Listings, transaction history and seller payouts."""

    def __init__(
        self,
        listings: ListingStore,
        transactions: TransactionLedger,
        payouts: PayoutStore,
    ) -> None:
        self._listings = listings
        self._transactions = transactions
        self._payouts = payouts

    async def create_listing(
        self,
        token: TokenInfo,
        token_amount: str,
        seller_address: str,
        asking_price: Decimal,
        market_price: Decimal,
    ) -> Listing:
        """Create an OPEN listing with its discount against market price cached."""
        try:
            quantity = Decimal(token_amount)
        except InvalidOperation as err:
            raise InvalidRequestError(f"Invalid token amount: {token_amount!r}") from err
        if not quantity.is_finite() or quantity <= 0:
            raise InvalidRequestError("Token amount must be a positive decimal")
        if asking_price <= 0 or market_price <= 0:
            raise InvalidRequestError("Prices must be positive")

        listing = await self._listings.create(
            token=token,
            token_amount=token_amount,
            seller_address=seller_address,
            asking_price=asking_price,
            market_price=market_price,
            discount_percent=compute_discount_percent(asking_price, market_price),
        )
        logger.info(
            "listing.created",
            listing_id=listing.id,
            token=token.symbol,
            amount=token_amount,
            asking_price=str(asking_price),
        )
        return listing

    async def get_listing(self, listing_id: str) -> Listing:
        listing = await self._listings.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    async def list_listings(
        self,
        status: ListingStatus | None = None,
        seller_address: str | None = None,
    ) -> list[Listing]:
        return await self._listings.list_by_status(status=status, seller_address=seller_address)

    async def list_transactions(self, address: str) -> list[Transaction]:
        """Transactions where ``address`` is buyer or seller."""
        if not address:
            raise InvalidRequestError("Address required")
        return await self._transactions.list_by_address(address)

    async def list_payouts(self, seller_address: str) -> list[Payout]:
        if not seller_address:
            raise InvalidRequestError("Seller address required")
        return await self._payouts.list_by_seller(seller_address)

    async def advance_payout(self, payout_id: str) -> Payout:
        """Move a payout one step: PENDING -> PROCESSING -> COMPLETED."""
        payout = await self._payouts.get(payout_id)
        if payout is None:
            raise PayoutNotFoundError(payout_id)

        event_name = _PAYOUT_EVENTS.get(payout.status)
        if event_name is None:
            raise InvalidStateTransitionError("payout", payout.status, "advance")
        new_status = validate_transition("payout", payout.status, event_name)
        updated = await self._payouts.update_status(payout_id, PayoutStatus(new_status))
        logger.info(
            "payout.status_changed",
            payout_id=payout_id,
            old_status=payout.status,
            new_status=new_status,
        )
        return updated
