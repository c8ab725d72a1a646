"""Tests for the MarketplaceService: listing creation, queries and payouts."""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import BUYER, SELLER, USDT, create_listing, sign

from token_bazaar.domain.enums import ListingStatus, PayoutStatus
from token_bazaar.domain.exceptions import (
    InvalidRequestError,
    InvalidStateTransitionError,
    ListingNotFoundError,
    PayoutNotFoundError,
)


async def _create(marketplace, token_amount: str = "500", asking: str = "38000", market: str = "42000"):
    return await marketplace.create_listing(
        token=USDT,
        token_amount=token_amount,
        seller_address=SELLER,
        asking_price=Decimal(asking),
        market_price=Decimal(market),
    )


class TestCreateListing:
    @pytest.mark.asyncio
    async def test_creates_open_listing_with_discount(self, marketplace) -> None:
        listing = await _create(marketplace)
        assert listing.status == ListingStatus.OPEN
        assert listing.discount_percent == Decimal("9.5")
        assert listing.token_symbol == "USDT"
        assert listing.token_decimals == 6

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "NaN"])
    async def test_rejects_bad_token_amount(self, marketplace, amount: str) -> None:
        with pytest.raises(InvalidRequestError):
            await _create(marketplace, token_amount=amount)

    @pytest.mark.asyncio
    async def test_rejects_non_positive_price(self, marketplace) -> None:
        with pytest.raises(InvalidRequestError):
            await _create(marketplace, asking="0")


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_listing(self, marketplace, listings) -> None:
        listing = await create_listing(listings)
        assert (await marketplace.get_listing(listing.id)).id == listing.id

    @pytest.mark.asyncio
    async def test_get_unknown_listing(self, marketplace) -> None:
        with pytest.raises(ListingNotFoundError):
            await marketplace.get_listing("12")

    @pytest.mark.asyncio
    async def test_list_by_status(self, marketplace, listings) -> None:
        first = await create_listing(listings)
        await create_listing(listings)
        await listings.update_status(first.id, ListingStatus.CANCELLED)

        assert len(await marketplace.list_listings()) == 2
        assert len(await marketplace.list_listings(status=ListingStatus.OPEN)) == 1

    @pytest.mark.asyncio
    async def test_address_required(self, marketplace) -> None:
        with pytest.raises(InvalidRequestError):
            await marketplace.list_transactions("")
        with pytest.raises(InvalidRequestError):
            await marketplace.list_payouts("")

    @pytest.mark.asyncio
    async def test_history_after_sale(self, marketplace, orchestrator, listings) -> None:
        listing = await create_listing(listings)
        order = await orchestrator.create_order(listing.id, BUYER)
        await orchestrator.verify_payment(
            order.order_id, "pay_1", sign(order.order_id, "pay_1"), listing.id, BUYER
        )

        assert [tx.id for tx in await marketplace.list_transactions(BUYER)] == [order.transaction_id]
        assert len(await marketplace.list_transactions(SELLER)) == 1
        assert len(await marketplace.list_payouts(SELLER)) == 1


class TestAdvancePayout:
    @pytest.mark.asyncio
    async def test_advances_to_completed(self, marketplace, payouts) -> None:
        payout = await payouts.create(seller_address=SELLER, amount=Decimal("38000"), transaction_id="1")

        assert (await marketplace.advance_payout(payout.id)).status == PayoutStatus.PROCESSING
        assert (await marketplace.advance_payout(payout.id)).status == PayoutStatus.COMPLETED

        with pytest.raises(InvalidStateTransitionError):
            await marketplace.advance_payout(payout.id)

    @pytest.mark.asyncio
    async def test_completed_payout_is_terminal(self, marketplace, payouts) -> None:
        payout = await payouts.create(seller_address=SELLER, amount=Decimal("38000"), transaction_id="1")
        await payouts.update_status(payout.id, PayoutStatus.COMPLETED)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await marketplace.advance_payout(payout.id)

        assert exc_info.value.current_state == PayoutStatus.COMPLETED
        assert exc_info.value.attempted_state == "advance"
        assert (await payouts.get(payout.id)).status == PayoutStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_payout(self, marketplace) -> None:
        with pytest.raises(PayoutNotFoundError):
            await marketplace.advance_payout("3")
