"""Tests for the in-process stores and purchase lock."""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest
from conftest import BUYER, SELLER, create_listing

from token_bazaar.domain.enums import ListingStatus, PayoutStatus, TransactionStatus
from token_bazaar.domain.exceptions import DuplicateOrderError
from token_bazaar.domain.protocols import PurchaseLock
from token_bazaar.infrastructure.memory_store import (
    InMemoryListingStore,
    InMemoryPayoutStore,
    InMemoryPurchaseLock,
    InMemoryTransactionLedger,
)

MIXED_CASE = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestPurchaseLock:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryPurchaseLock(), PurchaseLock)

    @pytest.mark.asyncio
    async def test_second_acquire_fails_until_release(self) -> None:
        lock = InMemoryPurchaseLock()
        assert await lock.acquire("1") is True
        assert await lock.acquire("1") is False
        await lock.release("1")
        assert await lock.acquire("1") is True

    @pytest.mark.asyncio
    async def test_keys_are_independent(self) -> None:
        lock = InMemoryPurchaseLock()
        assert await lock.acquire("1") is True
        assert await lock.acquire("2") is True

    @pytest.mark.asyncio
    async def test_release_of_unheld_key_is_noop(self) -> None:
        lock = InMemoryPurchaseLock()
        await lock.release("missing")
        assert lock.is_held("missing") is False

    def test_exactly_one_thread_wins(self) -> None:
        lock = InMemoryPurchaseLock()
        barrier = threading.Barrier(16)
        results: list[bool] = []
        results_guard = threading.Lock()

        def contend() -> None:
            barrier.wait()
            won = lock.try_acquire("42")
            with results_guard:
                results.append(won)

        threads = [threading.Thread(target=contend) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 15

    def test_lease_expires_after_ttl(self) -> None:
        clock = FakeClock()
        lock = InMemoryPurchaseLock(ttl_seconds=900, clock=clock)
        assert lock.try_acquire("1") is True

        clock.now += 899
        assert lock.try_acquire("1") is False
        assert lock.is_held("1") is True

        clock.now += 1
        assert lock.is_held("1") is False
        assert lock.try_acquire("1") is True


class TestListingStore:
    @pytest.mark.asyncio
    async def test_create_assigns_sequential_ids(self) -> None:
        store = InMemoryListingStore()
        first = await create_listing(store)
        second = await create_listing(store)
        assert (first.id, second.id) == ("1", "2")
        assert first.status == ListingStatus.OPEN

    @pytest.mark.asyncio
    async def test_get_returns_copy(self) -> None:
        store = InMemoryListingStore()
        listing = await create_listing(store)
        fetched = await store.get(listing.id)
        fetched.status = ListingStatus.SOLD
        assert (await store.get(listing.id)).status == ListingStatus.OPEN

    @pytest.mark.asyncio
    async def test_get_unknown(self) -> None:
        assert await InMemoryListingStore().get("99") is None

    @pytest.mark.asyncio
    async def test_list_filters_by_status_and_seller(self) -> None:
        store = InMemoryListingStore()
        a = await create_listing(store)
        await create_listing(store, seller=BUYER)
        await store.update_status(a.id, ListingStatus.CANCELLED)

        open_listings = await store.list_by_status(status=ListingStatus.OPEN)
        assert [listing.seller_address for listing in open_listings] == [BUYER]

        by_seller = await store.list_by_status(seller_address=SELLER)
        assert [listing.id for listing in by_seller] == [a.id]

    @pytest.mark.asyncio
    async def test_seller_filter_ignores_case(self) -> None:
        store = InMemoryListingStore()
        listing = await create_listing(store, seller=MIXED_CASE)
        found = await store.list_by_status(seller_address=MIXED_CASE.lower())
        assert [item.id for item in found] == [listing.id]

    @pytest.mark.asyncio
    async def test_update_status_records_buyer(self) -> None:
        store = InMemoryListingStore()
        listing = await create_listing(store)
        updated = await store.update_status(listing.id, ListingStatus.SOLD, buyer_address=BUYER)
        assert updated.status == ListingStatus.SOLD
        assert updated.buyer_address == BUYER

    @pytest.mark.asyncio
    async def test_update_unknown_returns_none(self) -> None:
        assert await InMemoryListingStore().update_status("5", ListingStatus.SOLD) is None

    @pytest.mark.asyncio
    async def test_guarded_update_refuses_stale_status(self) -> None:
        store = InMemoryListingStore()
        listing = await create_listing(store)
        await store.update_status(listing.id, ListingStatus.CANCELLED, expected_status=ListingStatus.OPEN)

        lost = await store.update_status(
            listing.id, ListingStatus.SOLD, expected_status=ListingStatus.OPEN, buyer_address=BUYER
        )

        assert lost is None
        current = await store.get(listing.id)
        assert current.status == ListingStatus.CANCELLED
        assert current.buyer_address is None


def _tx_kwargs(order_id: str = "order_1", buyer: str = BUYER) -> dict:
    return {
        "listing_id": "1",
        "buyer_address": buyer,
        "seller_address": SELLER,
        "token_symbol": "USDT",
        "token_amount": "500",
        "amount": Decimal("38000"),
        "gateway_order_id": order_id,
    }


class TestTransactionLedger:
    @pytest.mark.asyncio
    async def test_create_and_lookup_by_order(self) -> None:
        ledger = InMemoryTransactionLedger()
        tx = await ledger.create(**_tx_kwargs())
        assert tx.status == TransactionStatus.PENDING
        assert (await ledger.get_by_order_id("order_1")).id == tx.id
        assert await ledger.get_by_order_id("order_2") is None

    @pytest.mark.asyncio
    async def test_duplicate_order_id_rejected(self) -> None:
        ledger = InMemoryTransactionLedger()
        await ledger.create(**_tx_kwargs())
        with pytest.raises(DuplicateOrderError):
            await ledger.create(**_tx_kwargs())

    @pytest.mark.asyncio
    async def test_update_status_sets_payment_and_hash(self) -> None:
        ledger = InMemoryTransactionLedger()
        tx = await ledger.create(**_tx_kwargs())
        await ledger.update_status(tx.id, TransactionStatus.PAID, payment_id="pay_1")
        updated = await ledger.update_status(
            tx.id, TransactionStatus.RELEASED, release_tx_hash="0xabc"
        )
        assert updated.gateway_payment_id == "pay_1"
        assert updated.release_tx_hash == "0xabc"

    @pytest.mark.asyncio
    async def test_guarded_update_applies_once(self) -> None:
        ledger = InMemoryTransactionLedger()
        tx = await ledger.create(**_tx_kwargs())

        first = await ledger.update_status(
            tx.id, TransactionStatus.PAID, expected_status=TransactionStatus.PENDING, payment_id="pay_1"
        )
        second = await ledger.update_status(
            tx.id, TransactionStatus.PAID, expected_status=TransactionStatus.PENDING, payment_id="pay_2"
        )

        assert first.status == TransactionStatus.PAID
        assert second is None
        assert (await ledger.get(tx.id)).gateway_payment_id == "pay_1"

    @pytest.mark.asyncio
    async def test_list_by_address_matches_buyer_or_seller(self) -> None:
        ledger = InMemoryTransactionLedger()
        await ledger.create(**_tx_kwargs("order_1"))
        await ledger.create(**_tx_kwargs("order_2", buyer=MIXED_CASE))

        assert len(await ledger.list_by_address(SELLER)) == 2
        assert len(await ledger.list_by_address(MIXED_CASE.lower())) == 1
        assert await ledger.list_by_address("0x" + "9" * 40) == []


class TestPayoutStore:
    @pytest.mark.asyncio
    async def test_one_payout_per_transaction(self) -> None:
        store = InMemoryPayoutStore()
        first = await store.create(seller_address=SELLER, amount=Decimal("38000"), transaction_id="1")
        again = await store.create(seller_address=SELLER, amount=Decimal("38000"), transaction_id="1")
        assert first.id == again.id
        assert len(await store.list_by_seller(SELLER)) == 1

    @pytest.mark.asyncio
    async def test_status_update(self) -> None:
        store = InMemoryPayoutStore()
        payout = await store.create(seller_address=SELLER, amount=Decimal("1"), transaction_id="1")
        assert payout.status == PayoutStatus.PENDING
        updated = await store.update_status(payout.id, PayoutStatus.PROCESSING)
        assert updated.status == PayoutStatus.PROCESSING
        assert (await store.get_by_transaction("1")).status == PayoutStatus.PROCESSING
