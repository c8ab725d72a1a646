"""Shared test fixtures for the token marketplace test suite.

Provides:
    - Gateway credentials in the environment before any app import
    - In-memory stores and purchase lock
    - Fake gateway and escrow collaborators
    - A wired SettlementOrchestrator and helpers for creating listings
"""

from __future__ import annotations

import os

os.environ.setdefault("GATEWAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("GATEWAY_KEY_SECRET", "test_key_secret")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from token_bazaar.domain.exceptions import EscrowReleaseError  # noqa: E402
from token_bazaar.domain.models import GatewayOrder, TokenInfo  # noqa: E402
from token_bazaar.domain.signature import compute_payment_signature  # noqa: E402
from token_bazaar.infrastructure.memory_store import (  # noqa: E402
    InMemoryListingStore,
    InMemoryPayoutStore,
    InMemoryPurchaseLock,
    InMemoryTransactionLedger,
)
from token_bazaar.services.marketplace_service import MarketplaceService  # noqa: E402
from token_bazaar.services.settlement_service import SettlementOrchestrator  # noqa: E402

SECRET = "test_key_secret"
SELLER = "0x1111111111111111111111111111111111111111"
BUYER = "0x2222222222222222222222222222222222222222"
OTHER_BUYER = "0x3333333333333333333333333333333333333333"
USDT = TokenInfo(
    address="0x0000000000000000000000000000000000000001",
    symbol="USDT",
    name="Tether USD",
    decimals=6,
)


def sign(order_id: str, payment_id: str, secret: str = SECRET) -> str:
    return compute_payment_signature(order_id, payment_id, secret)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeGateway:
    """PaymentGatewayClient that hands out sequential order ids."""

    key_id = "rzp_test_key"

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.error: Exception | None = None

    async def create_order(
        self, amount: int, currency: str, receipt: str, notes: dict[str, str]
    ) -> GatewayOrder:
        self.calls.append(
            {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes}
        )
        if self.error is not None:
            raise self.error
        return GatewayOrder(
            id=f"order_{len(self.calls)}", amount=amount, currency=currency, receipt=receipt
        )


class FakeEscrow:
    """EscrowReleaser that succeeds or fails on demand."""

    def __init__(self, tx_hash: str = "0xabc123") -> None:
        self.tx_hash = tx_hash
        self.fail = False
        self.calls: list[tuple[str, str]] = []

    async def release(self, listing_id: str, buyer_address: str) -> str:
        self.calls.append((listing_id, buyer_address))
        if self.fail:
            raise EscrowReleaseError("execution reverted")
        return self.tx_hash


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def listings() -> InMemoryListingStore:
    return InMemoryListingStore()


@pytest.fixture
def transactions() -> InMemoryTransactionLedger:
    return InMemoryTransactionLedger()


@pytest.fixture
def payouts() -> InMemoryPayoutStore:
    return InMemoryPayoutStore()


@pytest.fixture
def purchase_lock() -> InMemoryPurchaseLock:
    return InMemoryPurchaseLock()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def escrow() -> FakeEscrow:
    return FakeEscrow()


@pytest.fixture
def orchestrator(listings, transactions, payouts, purchase_lock, gateway, escrow) -> SettlementOrchestrator:
    return SettlementOrchestrator(
        listings=listings,
        transactions=transactions,
        payouts=payouts,
        purchase_lock=purchase_lock,
        gateway=gateway,
        signature_secret=SECRET,
        escrow=escrow,
    )


@pytest.fixture
def marketplace(listings, transactions, payouts) -> MarketplaceService:
    return MarketplaceService(listings, transactions, payouts)


async def create_listing(
    store: InMemoryListingStore,
    asking_price: str = "38000",
    market_price: str = "42000",
    token_amount: str = "500",
    seller: str = SELLER,
):
    """Insert an OPEN listing straight into a store."""
    return await store.create(
        token=USDT,
        token_amount=token_amount,
        seller_address=seller,
        asking_price=Decimal(asking_price),
        market_price=Decimal(market_price),
        discount_percent=Decimal("9.5"),
    )
