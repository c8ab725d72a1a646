"""In-process stores and purchase lock.

Keyed maps guarded by a ``threading.Lock``: every method does its whole
read-modify-write under the guard with no ``await`` inside, so the stores
are safe under both the event loop and worker threads. Contents are lost
on restart; use the database backend for durability.
"""

from __future__ import annotations

import copy
import itertools
import threading
import time
from typing import TYPE_CHECKING

from token_bazaar.domain.enums import ListingStatus, PayoutStatus, TransactionStatus
from token_bazaar.domain.exceptions import DuplicateOrderError
from token_bazaar.domain.models import Listing, Payout, Transaction, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable
    from decimal import Decimal

    from token_bazaar.domain.models import TokenInfo


class InMemoryPurchaseLock:
    """Keyed reservation set with an optional lease.

    ``acquire`` is a single check-and-set under a mutex. A reservation older
    than ``ttl_seconds`` counts as abandoned and may be taken over.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._held: dict[str, float] = {}
        self._mutex = threading.Lock()

    async def acquire(self, listing_id: str) -> bool:
        return self.try_acquire(listing_id)

    async def release(self, listing_id: str) -> None:
        with self._mutex:
            self._held.pop(listing_id, None)

    def try_acquire(self, listing_id: str) -> bool:
        """Synchronous check-and-set, usable from plain threads."""
        now = self._clock()
        with self._mutex:
            acquired_at = self._held.get(listing_id)
            if acquired_at is not None and not self._expired(acquired_at, now):
                return False
            self._held[listing_id] = now
            return True

    def is_held(self, listing_id: str) -> bool:
        with self._mutex:
            acquired_at = self._held.get(listing_id)
            return acquired_at is not None and not self._expired(acquired_at, self._clock())

    def _expired(self, acquired_at: float, now: float) -> bool:
        return self._ttl is not None and now - acquired_at >= self._ttl


class InMemoryListingStore:
    """Listings keyed by sequential string IDs."""

    def __init__(self) -> None:
        self._rows: dict[str, Listing] = {}
        self._ids = itertools.count(1)
        self._mutex = threading.Lock()

    async def create(
        self,
        token: TokenInfo,
        token_amount: str,
        seller_address: str,
        asking_price: Decimal,
        market_price: Decimal,
        discount_percent: Decimal,
    ) -> Listing:
        now = utcnow()
        with self._mutex:
            listing = Listing(
                id=str(next(self._ids)),
                token_address=token.address,
                token_symbol=token.symbol,
                token_name=token.name,
                token_decimals=token.decimals,
                token_amount=token_amount,
                seller_address=seller_address,
                asking_price=asking_price,
                market_price=market_price,
                discount_percent=discount_percent,
                status=ListingStatus.OPEN,
                created_at=now,
                updated_at=now,
            )
            self._rows[listing.id] = listing
            return copy.copy(listing)

    async def get(self, listing_id: str) -> Listing | None:
        with self._mutex:
            listing = self._rows.get(listing_id)
            return copy.copy(listing) if listing else None

    async def list_by_status(
        self,
        status: ListingStatus | None = None,
        seller_address: str | None = None,
    ) -> list[Listing]:
        with self._mutex:
            rows = list(self._rows.values())
        if status is not None:
            rows = [r for r in rows if r.status == status]
        if seller_address is not None:
            seller = seller_address.lower()
            rows = [r for r in rows if r.seller_address.lower() == seller]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return [copy.copy(r) for r in rows]

    async def update_status(
        self,
        listing_id: str,
        status: ListingStatus,
        expected_status: ListingStatus | None = None,
        buyer_address: str | None = None,
    ) -> Listing | None:
        with self._mutex:
            listing = self._rows.get(listing_id)
            if listing is None or (expected_status is not None and listing.status != expected_status):
                return None
            listing.status = status
            listing.updated_at = utcnow()
            if buyer_address:
                listing.buyer_address = buyer_address
            return copy.copy(listing)


class InMemoryTransactionLedger:
    """Transactions keyed by ID with a unique index on gateway order ID."""

    def __init__(self) -> None:
        self._rows: dict[str, Transaction] = {}
        self._by_order: dict[str, str] = {}
        self._ids = itertools.count(1)
        self._mutex = threading.Lock()

    async def create(
        self,
        listing_id: str,
        buyer_address: str,
        seller_address: str,
        token_symbol: str,
        token_amount: str,
        amount: Decimal,
        gateway_order_id: str,
    ) -> Transaction:
        with self._mutex:
            if gateway_order_id in self._by_order:
                raise DuplicateOrderError(gateway_order_id)
            tx = Transaction(
                id=str(next(self._ids)),
                listing_id=listing_id,
                buyer_address=buyer_address,
                seller_address=seller_address,
                token_symbol=token_symbol,
                token_amount=token_amount,
                amount=amount,
                gateway_order_id=gateway_order_id,
                status=TransactionStatus.PENDING,
                created_at=utcnow(),
            )
            self._rows[tx.id] = tx
            self._by_order[gateway_order_id] = tx.id
            return copy.copy(tx)

    async def get(self, transaction_id: str) -> Transaction | None:
        with self._mutex:
            tx = self._rows.get(transaction_id)
            return copy.copy(tx) if tx else None

    async def get_by_order_id(self, gateway_order_id: str) -> Transaction | None:
        with self._mutex:
            tx_id = self._by_order.get(gateway_order_id)
            return copy.copy(self._rows[tx_id]) if tx_id else None

    async def list_by_address(self, address: str) -> list[Transaction]:
        needle = address.lower()
        with self._mutex:
            rows = [
                copy.copy(t)
                for t in self._rows.values()
                if t.buyer_address.lower() == needle or t.seller_address.lower() == needle
            ]
        rows.sort(key=lambda t: t.created_at, reverse=True)
        return rows

    async def update_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        expected_status: TransactionStatus | None = None,
        payment_id: str | None = None,
        release_tx_hash: str | None = None,
    ) -> Transaction | None:
        with self._mutex:
            tx = self._rows.get(transaction_id)
            if tx is None or (expected_status is not None and tx.status != expected_status):
                return None
            tx.status = status
            if payment_id:
                tx.gateway_payment_id = payment_id
            if release_tx_hash:
                tx.release_tx_hash = release_tx_hash
            return copy.copy(tx)


class InMemoryPayoutStore:
    """Payouts keyed by ID, at most one per transaction."""

    def __init__(self) -> None:
        self._rows: dict[str, Payout] = {}
        self._by_tx: dict[str, str] = {}
        self._ids = itertools.count(1)
        self._mutex = threading.Lock()

    async def create(
        self,
        seller_address: str,
        amount: Decimal,
        transaction_id: str,
    ) -> Payout:
        with self._mutex:
            existing = self._by_tx.get(transaction_id)
            if existing is not None:
                return copy.copy(self._rows[existing])
            payout = Payout(
                id=str(next(self._ids)),
                seller_address=seller_address,
                amount=amount,
                status=PayoutStatus.PENDING,
                transaction_id=transaction_id,
                created_at=utcnow(),
            )
            self._rows[payout.id] = payout
            self._by_tx[transaction_id] = payout.id
            return copy.copy(payout)

    async def get(self, payout_id: str) -> Payout | None:
        with self._mutex:
            payout = self._rows.get(payout_id)
            return copy.copy(payout) if payout else None

    async def get_by_transaction(self, transaction_id: str) -> Payout | None:
        with self._mutex:
            payout_id = self._by_tx.get(transaction_id)
            return copy.copy(self._rows[payout_id]) if payout_id else None

    async def list_by_seller(self, seller_address: str) -> list[Payout]:
        seller = seller_address.lower()
        with self._mutex:
            rows = [copy.copy(p) for p in self._rows.values() if p.seller_address.lower() == seller]
        rows.sort(key=lambda p: p.created_at, reverse=True)
        return rows

    async def update_status(self, payout_id: str, status: PayoutStatus) -> Payout | None:
        with self._mutex:
            payout = self._rows.get(payout_id)
            if payout is None:
                return None
            payout.status = status
            return copy.copy(payout)
