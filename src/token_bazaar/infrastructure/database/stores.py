"""SQLAlchemy-backed stores.

Same contracts as the in-memory stores, over the listings, transactions and
payouts tables. Each call runs in its own short session so every status
change is a single committed write. Status writes may be guarded on the
current status, which makes them a compare-and-set across processes.
Rows are converted to domain dataclasses before they leave this module.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from token_bazaar.domain.enums import ListingStatus, PayoutStatus, TransactionStatus
from token_bazaar.domain.exceptions import DuplicateOrderError
from token_bazaar.domain.models import Listing, Payout, Transaction
from token_bazaar.infrastructure.database.orm_models import (
    ListingRow,
    PayoutRow,
    TransactionRow,
)

if TYPE_CHECKING:
    from decimal import Decimal

    from token_bazaar.domain.models import TokenInfo
    from token_bazaar.infrastructure.database.engine import Database


def _row_id(value: str) -> int | None:
    """Public IDs are decimal strings; anything else cannot match a row."""
    return int(value) if value.isdigit() else None


def _to_listing(row: ListingRow) -> Listing:
    return Listing(
        id=str(row.id),
        token_address=row.token_address,
        token_symbol=row.token_symbol,
        token_name=row.token_name,
        token_decimals=row.token_decimals,
        token_amount=row.token_amount,
        seller_address=row.seller_address,
        asking_price=row.asking_price,
        market_price=row.market_price,
        discount_percent=row.discount_percent,
        status=ListingStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        buyer_address=row.buyer_address,
    )


def _to_transaction(row: TransactionRow) -> Transaction:
    return Transaction(
        id=str(row.id),
        listing_id=str(row.listing_id),
        buyer_address=row.buyer_address,
        seller_address=row.seller_address,
        token_symbol=row.token_symbol,
        token_amount=row.token_amount,
        amount=row.amount,
        gateway_order_id=row.gateway_order_id,
        status=TransactionStatus(row.status),
        created_at=row.created_at,
        gateway_payment_id=row.gateway_payment_id,
        release_tx_hash=row.release_tx_hash,
    )


def _to_payout(row: PayoutRow) -> Payout:
    return Payout(
        id=str(row.id),
        seller_address=row.seller_address,
        amount=row.amount,
        status=PayoutStatus(row.status),
        transaction_id=str(row.transaction_id),
        created_at=row.created_at,
    )


class SqlListingStore:
    """Data access for listings."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(
        self,
        token: TokenInfo,
        token_amount: str,
        seller_address: str,
        asking_price: Decimal,
        market_price: Decimal,
        discount_percent: Decimal,
    ) -> Listing:
        async with self._db.session() as session:
            row = ListingRow(
                token_address=token.address,
                token_symbol=token.symbol,
                token_name=token.name,
                token_decimals=token.decimals,
                token_amount=token_amount,
                seller_address=seller_address,
                asking_price=asking_price,
                market_price=market_price,
                discount_percent=discount_percent,
                status=ListingStatus.OPEN.value,
            )
            session.add(row)
            await session.flush()
            return _to_listing(row)

    async def get(self, listing_id: str) -> Listing | None:
        row_id = _row_id(listing_id)
        if row_id is None:
            return None
        async with self._db.session() as session:
            row = await session.get(ListingRow, row_id)
            return _to_listing(row) if row else None

    async def list_by_status(
        self,
        status: ListingStatus | None = None,
        seller_address: str | None = None,
    ) -> list[Listing]:
        stmt = select(ListingRow).order_by(ListingRow.created_at.desc())
        if status is not None:
            stmt = stmt.where(ListingRow.status == status.value)
        if seller_address is not None:
            stmt = stmt.where(func.lower(ListingRow.seller_address) == seller_address.lower())
        async with self._db.session() as session:
            result = await session.execute(stmt)
            return [_to_listing(r) for r in result.scalars().all()]

    async def update_status(
        self,
        listing_id: str,
        status: ListingStatus,
        expected_status: ListingStatus | None = None,
        buyer_address: str | None = None,
    ) -> Listing | None:
        """Single guarded UPDATE; returns None when no row matched."""
        row_id = _row_id(listing_id)
        if row_id is None:
            return None
        values: dict[str, object] = {"status": status.value}
        if buyer_address:
            values["buyer_address"] = buyer_address
        stmt = update(ListingRow).where(ListingRow.id == row_id)
        if expected_status is not None:
            stmt = stmt.where(ListingRow.status == expected_status.value)
        async with self._db.session() as session:
            result = await session.execute(stmt.values(**values))
            if result.rowcount == 0:
                return None
            row = await session.get(ListingRow, row_id)
            return _to_listing(row)


class SqlTransactionLedger:
    """Data access for transactions."""

    def __init__(self, db: Database) -> None:
        self._db = db

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
        try:
            async with self._db.session() as session:
                row = TransactionRow(
                    listing_id=int(listing_id),
                    buyer_address=buyer_address,
                    seller_address=seller_address,
                    token_symbol=token_symbol,
                    token_amount=token_amount,
                    amount=amount,
                    gateway_order_id=gateway_order_id,
                    status=TransactionStatus.PENDING.value,
                )
                session.add(row)
                await session.flush()
                return _to_transaction(row)
        except IntegrityError as err:
            raise DuplicateOrderError(gateway_order_id) from err

    async def get(self, transaction_id: str) -> Transaction | None:
        row_id = _row_id(transaction_id)
        if row_id is None:
            return None
        async with self._db.session() as session:
            row = await session.get(TransactionRow, row_id)
            return _to_transaction(row) if row else None

    async def get_by_order_id(self, gateway_order_id: str) -> Transaction | None:
        async with self._db.session() as session:
            result = await session.execute(
                select(TransactionRow).where(TransactionRow.gateway_order_id == gateway_order_id)
            )
            row = result.scalar_one_or_none()
            return _to_transaction(row) if row else None

    async def list_by_address(self, address: str) -> list[Transaction]:
        needle = address.lower()
        stmt = (
            select(TransactionRow)
            .where(
                or_(
                    func.lower(TransactionRow.buyer_address) == needle,
                    func.lower(TransactionRow.seller_address) == needle,
                )
            )
            .order_by(TransactionRow.created_at.desc())
        )
        async with self._db.session() as session:
            result = await session.execute(stmt)
            return [_to_transaction(r) for r in result.scalars().all()]

    async def update_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        expected_status: TransactionStatus | None = None,
        payment_id: str | None = None,
        release_tx_hash: str | None = None,
    ) -> Transaction | None:
        """``UPDATE ... WHERE id = :id AND status = :expected``; None when it matched nothing."""
        row_id = _row_id(transaction_id)
        if row_id is None:
            return None
        values: dict[str, object] = {"status": status.value}
        if payment_id:
            values["gateway_payment_id"] = payment_id
        if release_tx_hash:
            values["release_tx_hash"] = release_tx_hash
        stmt = update(TransactionRow).where(TransactionRow.id == row_id)
        if expected_status is not None:
            stmt = stmt.where(TransactionRow.status == expected_status.value)
        async with self._db.session() as session:
            result = await session.execute(stmt.values(**values))
            if result.rowcount == 0:
                return None
            row = await session.get(TransactionRow, row_id)
            return _to_transaction(row)


class SqlPayoutStore:
    """Data access for seller payouts."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(
        self,
        seller_address: str,
        amount: Decimal,
        transaction_id: str,
    ) -> Payout:
        existing = await self.get_by_transaction(transaction_id)
        if existing is not None:
            return existing
        try:
            async with self._db.session() as session:
                row = PayoutRow(
                    seller_address=seller_address,
                    amount=amount,
                    status=PayoutStatus.PENDING.value,
                    transaction_id=int(transaction_id),
                )
                session.add(row)
                await session.flush()
                return _to_payout(row)
        except IntegrityError:
            # Lost a race with a concurrent insert for the same transaction
            existing = await self.get_by_transaction(transaction_id)
            if existing is None:
                raise
            return existing

    async def get(self, payout_id: str) -> Payout | None:
        row_id = _row_id(payout_id)
        if row_id is None:
            return None
        async with self._db.session() as session:
            row = await session.get(PayoutRow, row_id)
            return _to_payout(row) if row else None

    async def get_by_transaction(self, transaction_id: str) -> Payout | None:
        row_id = _row_id(transaction_id)
        if row_id is None:
            return None
        async with self._db.session() as session:
            result = await session.execute(
                select(PayoutRow).where(PayoutRow.transaction_id == row_id)
            )
            row = result.scalar_one_or_none()
            return _to_payout(row) if row else None

    async def list_by_seller(self, seller_address: str) -> list[Payout]:
        stmt = (
            select(PayoutRow)
            .where(func.lower(PayoutRow.seller_address) == seller_address.lower())
            .order_by(PayoutRow.created_at.desc())
        )
        async with self._db.session() as session:
            result = await session.execute(stmt)
            return [_to_payout(r) for r in result.scalars().all()]

    async def update_status(self, payout_id: str, status: PayoutStatus) -> Payout | None:
        row_id = _row_id(payout_id)
        if row_id is None:
            return None
        async with self._db.session() as session:
            row = await session.get(PayoutRow, row_id)
            if row is None:
                return None
            row.status = status.value
            await session.flush()
            return _to_payout(row)
