"""Store and collaborator protocols.

Structural interfaces for everything the settlement orchestrator composes.
Concrete implementations:
    - infrastructure/memory_store.py       (in-process maps and lock set)
    - infrastructure/database/stores.py    (SQLAlchemy async)
    - infrastructure/redis_lock.py         (distributed purchase lock)
    - infrastructure/gateway.py            (Razorpay REST API)
    - infrastructure/escrow.py             (on-chain escrow contract)

The domain layer has ZERO imports from httpx, SQLAlchemy, redis or web3.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from decimal import Decimal

    from token_bazaar.domain.enums import ListingStatus, PayoutStatus, TransactionStatus
    from token_bazaar.domain.models import (
        GatewayOrder,
        Listing,
        Payout,
        TokenInfo,
        Transaction,
    )


@runtime_checkable
class PurchaseLock(Protocol):
    """Per-listing exclusivity gate for checkout."""

    async def acquire(self, listing_id: str) -> bool:
        """Atomically reserve ``listing_id``. True iff it was not already reserved."""
        ...

    async def release(self, listing_id: str) -> None:
        """Drop the reservation. Idempotent."""
        ...


class ListingStore(Protocol):
    async def create(
        self,
        token: TokenInfo,
        token_amount: str,
        seller_address: str,
        asking_price: Decimal,
        market_price: Decimal,
        discount_percent: Decimal,
    ) -> Listing: ...

    async def get(self, listing_id: str) -> Listing | None: ...

    async def list_by_status(
        self,
        status: ListingStatus | None = None,
        seller_address: str | None = None,
    ) -> list[Listing]: ...

    async def update_status(
        self,
        listing_id: str,
        status: ListingStatus,
        expected_status: ListingStatus | None = None,
        buyer_address: str | None = None,
    ) -> Listing | None:
        """Set the status. With ``expected_status``, only if the row still has it; None otherwise."""
        ...


class TransactionLedger(Protocol):
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
        """Insert a PENDING transaction. Raises DuplicateOrderError on a reused order id."""
        ...

    async def get(self, transaction_id: str) -> Transaction | None: ...

    async def get_by_order_id(self, gateway_order_id: str) -> Transaction | None: ...

    async def list_by_address(self, address: str) -> list[Transaction]: ...

    async def update_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        expected_status: TransactionStatus | None = None,
        payment_id: str | None = None,
        release_tx_hash: str | None = None,
    ) -> Transaction | None:
        """Compare-and-set on status. Returns None if the row is missing or no longer ``expected_status``."""
        ...


class PayoutStore(Protocol):
    async def create(
        self,
        seller_address: str,
        amount: Decimal,
        transaction_id: str,
    ) -> Payout:
        """Insert a PENDING payout, or return the one already linked to the transaction."""
        ...

    async def get(self, payout_id: str) -> Payout | None: ...

    async def get_by_transaction(self, transaction_id: str) -> Payout | None: ...

    async def list_by_seller(self, seller_address: str) -> list[Payout]: ...

    async def update_status(self, payout_id: str, status: PayoutStatus) -> Payout | None: ...


@runtime_checkable
class PaymentGatewayClient(Protocol):
    """Adapter to the payment gateway's order API."""

    key_id: str

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrder:
        """Open an order for ``amount`` minor currency units.

        Raises:
            GatewayAuthError: Credentials were rejected.
            GatewayError: Any other failure.
        """
        ...


@runtime_checkable
class EscrowReleaser(Protocol):
    """Adapter to the escrow contract's release call."""

    async def release(self, listing_id: str, buyer_address: str) -> str:
        """Release escrowed tokens to the buyer and return the confirmed tx hash.

        Raises:
            EscrowReleaseError: The call failed, reverted, or never confirmed.
        """
        ...
