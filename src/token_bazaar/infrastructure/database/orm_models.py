"""SQLAlchemy 2.0 ORM models for the token marketplace.

Three tables:
    1. listings      — Seller offers and their OPEN/SOLD/CANCELLED status.
    2. transactions  — One row per gateway order (settlement attempt).
    3. payouts       — Seller proceeds, at most one per transaction.

Design decisions:
    - Integer primary keys: the listing id doubles as the escrow contract's
      uint256 listing id.
    - Numeric for settlement-currency amounts, String for token quantities.
    - UNIQUE on transactions.gateway_order_id and payouts.transaction_id.
    - CHECK constraints on status columns.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# 1. listings
# ---------------------------------------------------------------------------
class ListingRow(Base):
    """A seller's offer to sell a token quantity at a fixed price."""

    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # --- Token identity ---
    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    token_name: Mapped[str] = mapped_column(String(128), nullable=False)
    token_decimals: Mapped[int] = mapped_column(Integer, nullable=False)
    token_amount: Mapped[str] = mapped_column(
        String(80),
        nullable=False,
        comment="Decimal string; never stored as a float",
    )

    # --- Parties ---
    seller_address: Mapped[str] = mapped_column(String(42), nullable=False)
    buyer_address: Mapped[str | None] = mapped_column(String(42), nullable=True, default=None)

    # --- Pricing ---
    asking_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    market_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 1), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OPEN")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('OPEN', 'SOLD', 'CANCELLED')",
            name="ck_listing_valid_status",
        ),
        CheckConstraint("asking_price > 0", name="ck_listing_positive_price"),
        Index("idx_listing_status", "status"),
        Index("idx_listing_seller", "seller_address"),
    )

    def __repr__(self) -> str:
        return f"<Listing id={self.id} {self.token_amount} {self.token_symbol} status={self.status}>"


# ---------------------------------------------------------------------------
# 2. transactions
# ---------------------------------------------------------------------------
class TransactionRow(Base):
    """One settlement attempt, bound to exactly one gateway order."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    listing_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("listings.id"),
        nullable=False,
    )

    buyer_address: Mapped[str] = mapped_column(String(42), nullable=False)
    seller_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    token_amount: Mapped[str] = mapped_column(String(80), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    # --- Gateway / chain references ---
    gateway_order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    release_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'PAID', 'RELEASING', 'RELEASED', 'FAILED')",
            name="ck_transaction_valid_status",
        ),
        Index("idx_transaction_listing", "listing_id"),
        Index("idx_transaction_buyer", "buyer_address"),
        Index("idx_transaction_seller", "seller_address"),
    )

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} order={self.gateway_order_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. payouts
# ---------------------------------------------------------------------------
class PayoutRow(Base):
    """Seller proceeds for one settled transaction."""

    __tablename__ = "payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_address: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    transaction_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("transactions.id"),
        nullable=False,
        unique=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED')",
            name="ck_payout_valid_status",
        ),
        Index("idx_payout_seller", "seller_address"),
    )

    def __repr__(self) -> str:
        return f"<Payout id={self.id} tx={self.transaction_id} status={self.status}>"
