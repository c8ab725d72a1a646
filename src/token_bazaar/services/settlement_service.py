"""Settlement Service — checkout, payment verification and escrow release.

This is the application layer that coordinates between:
    - ListingStore / TransactionLedger / PayoutStore (system of record)
    - PurchaseLock (seat reservation for the whole checkout window)
    - PaymentGatewayClient (order creation)
    - EscrowReleaser (on-chain token release)
    - Domain state machines (transition guards)

It is the only writer of listing and transaction status during settlement.
Every status write is guarded on the status it was read with, so two
service instances sharing a database cannot both confirm one order or both
sell one listing.

Checkout:
    listing exists -> listing OPEN -> lock acquired -> gateway order
    -> PENDING transaction. Any failure after the lock is taken releases it.

Verification:
    transaction lookup -> replay guard -> listing match -> HMAC check
    -> PAID -> listing SOLD -> one payout
    -> escrow release (RELEASING -> RELEASED, or back to PAID) -> lock released.

Once PAID is written the listing and payout writes are shielded from
cancellation. The escrow call runs in a worker thread; its timeout stops
waiting for it but cannot stop the thread, so a release may still land on
chain after the transaction went back to PAID.
"""

from __future__ import annotations

import asyncio
import time
import weakref
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from token_bazaar.domain.enums import ListingStatus, TransactionStatus
from token_bazaar.domain.exceptions import (
    ConcurrentUpdateError,
    GatewayError,
    InvalidRequestError,
    InvalidSignatureError,
    InvalidStateTransitionError,
    ListingLockedError,
    ListingNotFoundError,
    ListingUnavailableError,
    ReleaseInProgressError,
    TransactionNotFoundError,
)
from token_bazaar.domain.models import (
    CheckoutOrder,
    Listing,
    SettlementResult,
    Transaction,
    to_minor_units,
)
from token_bazaar.domain.signature import verify_payment_signature
from token_bazaar.domain.state_machine import validate_transition
from token_bazaar.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from token_bazaar.domain.models import Payout
    from token_bazaar.domain.protocols import (
        EscrowReleaser,
        ListingStore,
        PaymentGatewayClient,
        PayoutStore,
        PurchaseLock,
        TransactionLedger,
    )

logger = get_logger(__name__)

RELEASED_MESSAGE = "Payment verified. Tokens released to your wallet."
PENDING_RELEASE_MESSAGE = "Payment verified. Tokens will be released shortly."

_SETTLED_STATUSES = (
    TransactionStatus.PAID,
    TransactionStatus.RELEASED,
    TransactionStatus.RELEASING,
)


class KeyedMutex:
    """In-process asyncio locks keyed by string; entries vanish when unused."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        async with lock:
            yield


class SettlementOrchestrator:
    """Runs the order-creation and payment-verification protocols."""

    def __init__(
        self,
        listings: ListingStore,
        transactions: TransactionLedger,
        payouts: PayoutStore,
        purchase_lock: PurchaseLock,
        gateway: PaymentGatewayClient,
        signature_secret: str,
        escrow: EscrowReleaser | None = None,
        currency: str = "INR",
        minor_unit_factor: int = 100,
        gateway_timeout_seconds: float = 15.0,
        escrow_timeout_seconds: float = 120.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not signature_secret:
            raise ValueError("signature_secret must not be empty")
        self._listings = listings
        self._transactions = transactions
        self._payouts = payouts
        self._purchase_lock = purchase_lock
        self._gateway = gateway
        self._secret = signature_secret
        self._escrow = escrow
        self._currency = currency
        self._minor_unit_factor = minor_unit_factor
        self._gateway_timeout = gateway_timeout_seconds
        self._escrow_timeout = escrow_timeout_seconds
        self._clock = clock
        # Lock order: order mutex before listing mutex, never the reverse
        self._order_mutex = KeyedMutex()
        self._listing_mutex = KeyedMutex()

    # ------------------------------------------------------------------
    # Phase 1: Order creation
    # ------------------------------------------------------------------

    async def create_order(self, listing_id: str, buyer_address: str) -> CheckoutOrder:
        """Reserve a listing and open a gateway order for its asking price.

        Raises:
            InvalidRequestError: listing_id or buyer_address missing.
            ListingNotFoundError: Unknown listing.
            InvalidStateTransitionError: Listing is not OPEN.
            ListingLockedError: Another checkout holds the listing.
            GatewayError / GatewayAuthError: The gateway call failed.
        """
        if not listing_id or not buyer_address:
            raise InvalidRequestError("listingId and buyerAddress are required")

        listing = await self._get_listing_or_raise(listing_id)
        self._require_open(listing)

        if not await self._purchase_lock.acquire(listing_id):
            logger.info("checkout.listing_locked", listing_id=listing_id, buyer=buyer_address)
            raise ListingLockedError(listing_id)

        try:
            # The previous lock holder may have sold it while we waited
            listing = await self._get_listing_or_raise(listing_id)
            self._require_open(listing)

            amount = to_minor_units(listing.asking_price, self._minor_unit_factor)
            receipt = f"listing_{listing_id}_{int(self._clock() * 1000)}"
            notes = {
                "listingId": listing_id,
                "buyerAddress": buyer_address,
                "tokenSymbol": listing.token_symbol,
                "tokenAmount": listing.token_amount,
            }

            async with asyncio.timeout(self._gateway_timeout):
                order = await self._gateway.create_order(
                    amount=amount,
                    currency=self._currency,
                    receipt=receipt,
                    notes=notes,
                )

            tx = await self._transactions.create(
                listing_id=listing_id,
                buyer_address=buyer_address,
                seller_address=listing.seller_address,
                token_symbol=listing.token_symbol,
                token_amount=listing.token_amount,
                amount=listing.asking_price,
                gateway_order_id=order.id,
            )
        except TimeoutError as exc:
            await self._purchase_lock.release(listing_id)
            logger.error("checkout.gateway_timeout", listing_id=listing_id)
            raise GatewayError("Payment gateway timed out") from exc
        except (Exception, asyncio.CancelledError):
            await self._purchase_lock.release(listing_id)
            raise

        logger.info(
            "checkout.order_created",
            listing_id=listing_id,
            order_id=order.id,
            transaction_id=tx.id,
            amount=amount,
        )
        return CheckoutOrder(
            order_id=order.id,
            amount=amount,
            currency=self._currency,
            transaction_id=tx.id,
            key_id=self._gateway.key_id,
        )

    # ------------------------------------------------------------------
    # Phase 2: Payment verification
    # ------------------------------------------------------------------

    async def verify_payment(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        listing_id: str,
        buyer_address: str,
    ) -> SettlementResult:
        """Verify a gateway payment confirmation and settle the sale.

        Safe to call repeatedly with the same payload: once the transaction
        is PAID or RELEASED the recorded outcome is returned. A replay of a
        PAID transaction whose listing is still OPEN closes the sale first.

        Raises:
            InvalidRequestError: Missing field, or listing/buyer mismatch.
            TransactionNotFoundError: No transaction for the order id.
            InvalidSignatureError: HMAC mismatch (transaction FAILED, lock released).
            ListingUnavailableError: Paid for a listing that is no longer OPEN.
        """
        fields = {
            "orderId": order_id,
            "paymentId": payment_id,
            "signature": signature,
            "listingId": listing_id,
            "buyerAddress": buyer_address,
        }
        missing = [name for name, value in fields.items() if not value]
        if missing:
            raise InvalidRequestError(f"Missing required fields: {', '.join(missing)}")

        async with self._order_mutex.hold(order_id):
            tx = await self._transactions.get_by_order_id(order_id)
            if tx is None:
                raise TransactionNotFoundError(order_id)

            if tx.status in _SETTLED_STATUSES:
                return await self._replay(tx)

            if tx.listing_id != listing_id:
                raise InvalidRequestError("Listing ID mismatch")
            if tx.buyer_address.lower() != buyer_address.lower():
                raise InvalidRequestError("Buyer address mismatch")

            if not verify_payment_signature(order_id, payment_id, signature, self._secret):
                logger.error(
                    "settlement.signature_mismatch",
                    order_id=order_id,
                    payment_id=payment_id,
                    listing_id=listing_id,
                    buyer=buyer_address,
                    transaction_id=tx.id,
                )
                try:
                    await self._advance(tx, "reject_signature", payment_id=payment_id)
                except ConcurrentUpdateError:
                    # Another verifier settled this order and still owns the lock
                    raise InvalidSignatureError() from None
                await self._purchase_lock.release(listing_id)
                raise InvalidSignatureError()

            try:
                tx = await self._advance(tx, "confirm_payment", payment_id=payment_id)
            except ConcurrentUpdateError:
                current = await self._transactions.get(tx.id)
                return await self._replay(current)

            return await self._settle(tx)

    async def _replay(self, tx: Transaction) -> SettlementResult:
        """Answer a verification for a transaction another call already confirmed."""
        if tx.status == TransactionStatus.RELEASING:
            raise ReleaseInProgressError(tx.id)
        if tx.status not in (TransactionStatus.PAID, TransactionStatus.RELEASED):
            raise InvalidStateTransitionError("transaction", tx.status, "confirm_payment")

        logger.info("settlement.replay", order_id=tx.gateway_order_id, status=tx.status)
        if tx.status == TransactionStatus.PAID:
            await self._resume_sale(tx)
        return SettlementResult(
            success=True,
            message="Payment already processed.",
            transaction_id=tx.id,
            release_tx_hash=tx.release_tx_hash,
        )

    async def _resume_sale(self, tx: Transaction) -> None:
        """Close the sale for a PAID transaction whose listing was left OPEN.

        The purchase lock decides who may do it: while the verifying call
        (or another checkout) holds the lock, nothing is touched.
        """
        listing = await self._listings.get(tx.listing_id)
        if listing is None or listing.status != ListingStatus.OPEN:
            return
        if not await self._purchase_lock.acquire(tx.listing_id):
            logger.warning(
                "settlement.resume_deferred",
                transaction_id=tx.id,
                listing_id=tx.listing_id,
            )
            return
        try:
            _, payout = await asyncio.shield(self._close_sale(tx))
        finally:
            await self._purchase_lock.release(tx.listing_id)
        logger.warning(
            "settlement.sale_resumed",
            transaction_id=tx.id,
            listing_id=tx.listing_id,
            payout_id=payout.id,
        )

    async def _settle(self, tx: Transaction) -> SettlementResult:
        """Close the sale, book the payout, then release tokens for a PAID transaction."""
        try:
            # Once PAID the sale must close even if the caller goes away
            listing, payout = await asyncio.shield(self._close_sale(tx))
            try:
                tx = await self._attempt_release(tx)
            except ConcurrentUpdateError:
                tx = await self._transactions.get(tx.id)
        finally:
            await self._purchase_lock.release(tx.listing_id)

        logger.info(
            "settlement.completed",
            transaction_id=tx.id,
            listing_id=listing.id,
            status=tx.status,
            payout_id=payout.id,
        )
        return SettlementResult(
            success=True,
            message=RELEASED_MESSAGE if tx.release_tx_hash else PENDING_RELEASE_MESSAGE,
            transaction_id=tx.id,
            release_tx_hash=tx.release_tx_hash,
        )

    async def _close_sale(self, tx: Transaction) -> tuple[Listing, Payout]:
        """OPEN -> SOLD to the transaction's buyer, then one payout for the seller."""
        async with self._listing_mutex.hold(tx.listing_id):
            listing = await self._listings.get(tx.listing_id)
            sold = None
            if listing is not None and listing.status == ListingStatus.OPEN:
                new_status = validate_transition("listing", listing.status, "sell")
                sold = await self._listings.update_status(
                    listing.id,
                    ListingStatus(new_status),
                    expected_status=listing.status,
                    buyer_address=tx.buyer_address,
                )
            if sold is None:
                current = await self._listings.get(tx.listing_id)
                status = current.status if current else "MISSING"
                logger.error(
                    "settlement.listing_unavailable",
                    listing_id=tx.listing_id,
                    listing_status=status,
                    transaction_id=tx.id,
                )
                raise ListingUnavailableError(tx.listing_id, status)

        payout = await self._payouts.create(
            seller_address=sold.seller_address,
            amount=sold.asking_price,
            transaction_id=tx.id,
        )
        return sold, payout

    # ------------------------------------------------------------------
    # Escrow release
    # ------------------------------------------------------------------

    async def retry_release(self, transaction_id: str) -> SettlementResult:
        """Retry the escrow release for a paid-but-unreleased transaction.

        Does not create a payout or touch the purchase lock: both were
        settled when the payment was verified.
        """
        tx = await self._transactions.get(transaction_id)
        if tx is None:
            raise TransactionNotFoundError(transaction_id)

        async with self._order_mutex.hold(tx.gateway_order_id):
            tx = await self._transactions.get(transaction_id)
            if tx.status == TransactionStatus.RELEASED:
                return SettlementResult(
                    success=True,
                    message="Tokens already released.",
                    transaction_id=tx.id,
                    release_tx_hash=tx.release_tx_hash,
                )
            if tx.status == TransactionStatus.RELEASING:
                raise ReleaseInProgressError(tx.id)
            if tx.status != TransactionStatus.PAID:
                raise InvalidStateTransitionError("transaction", tx.status, "start_release")

            listing = await self._listings.get(tx.listing_id)
            sold_to_buyer = (
                listing is not None
                and listing.status == ListingStatus.SOLD
                and (listing.buyer_address or "").lower() == tx.buyer_address.lower()
            )
            if not sold_to_buyer:
                raise ListingUnavailableError(
                    tx.listing_id, listing.status if listing else "MISSING"
                )

            try:
                tx = await self._attempt_release(tx)
            except ConcurrentUpdateError:
                raise ReleaseInProgressError(tx.id) from None

        released = tx.status == TransactionStatus.RELEASED
        return SettlementResult(
            success=released,
            message=(
                "Tokens released to the buyer."
                if released
                else "Escrow release failed; transaction remains PAID."
            ),
            transaction_id=tx.id,
            release_tx_hash=tx.release_tx_hash,
        )

    async def _attempt_release(self, tx: Transaction) -> Transaction:
        """Move a PAID transaction to RELEASED, or leave it PAID if the chain call fails."""
        if self._escrow is None:
            logger.warning(
                "settlement.escrow_not_configured",
                transaction_id=tx.id,
                detail="marking RELEASED without an on-chain release",
            )
            return await self._advance(tx, "skip_release")

        tx = await self._advance(tx, "start_release")
        try:
            async with asyncio.timeout(self._escrow_timeout):
                tx_hash = await self._escrow.release(tx.listing_id, tx.buyer_address)
        except asyncio.CancelledError:
            await self._advance(tx, "release_failed")
            raise
        except Exception as exc:
            # Money has moved; PAID without a hash is the retryable resting state.
            # A hash here means the call was sent but never confirmed.
            logger.error(
                "settlement.escrow_release_failed",
                transaction_id=tx.id,
                listing_id=tx.listing_id,
                tx_hash=getattr(exc, "tx_hash", None),
                error=repr(exc),
            )
            return await self._advance(tx, "release_failed")

        return await self._advance(tx, "release_confirmed", release_tx_hash=tx_hash)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel_listing(self, listing_id: str, seller_address: str | None = None) -> Listing:
        """Seller cancellation: OPEN -> CANCELLED. Never touches transactions or the lock."""
        async with self._listing_mutex.hold(listing_id):
            listing = await self._get_listing_or_raise(listing_id)
            if seller_address is not None and seller_address.lower() != listing.seller_address.lower():
                raise InvalidRequestError("Only the seller can cancel this listing")

            new_status = validate_transition("listing", listing.status, "cancel")
            updated = await self._listings.update_status(
                listing_id, ListingStatus(new_status), expected_status=listing.status
            )
            if updated is None:
                current = await self._get_listing_or_raise(listing_id)
                raise InvalidStateTransitionError("listing", current.status, "cancel")

        logger.info("listing.cancelled", listing_id=listing_id)
        return updated

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_listing_or_raise(self, listing_id: str) -> Listing:
        listing = await self._listings.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    @staticmethod
    def _require_open(listing: Listing) -> None:
        if listing.status != ListingStatus.OPEN:
            raise InvalidStateTransitionError("listing", listing.status, "checkout")

    async def _advance(
        self,
        tx: Transaction,
        event_name: str,
        payment_id: str | None = None,
        release_tx_hash: str | None = None,
    ) -> Transaction:
        """Guard a transaction transition, then write it only if the status is unchanged.

        Raises:
            ConcurrentUpdateError: Another writer moved the transaction first.
        """
        new_status = validate_transition("transaction", tx.status, event_name)
        updated = await self._transactions.update_status(
            tx.id,
            TransactionStatus(new_status),
            expected_status=tx.status,
            payment_id=payment_id,
            release_tx_hash=release_tx_hash,
        )
        if updated is None:
            current = await self._transactions.get(tx.id)
            if current is None:
                raise TransactionNotFoundError(tx.id)
            logger.warning(
                "transaction.concurrent_update",
                transaction_id=tx.id,
                expected_status=tx.status,
                actual_status=current.status,
                event=event_name,
            )
            raise ConcurrentUpdateError("transaction", tx.id)
        logger.info(
            "transaction.status_changed",
            transaction_id=tx.id,
            old_status=tx.status,
            new_status=new_status,
        )
        return updated
