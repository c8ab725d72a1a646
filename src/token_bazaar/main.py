"""FastAPI application entry point for the token marketplace.

Lifecycle:
    1. Startup: Initialize logging, pick the store and lock backends, build
       the gateway client and (when configured) the escrow releaser, and
       wire them into the settlement orchestrator.
    2. Running: Serve the REST API at /api/v1/*.
    3. Shutdown: Close the gateway client, Redis and the database.

Run with:
    uv run uvicorn token_bazaar.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from token_bazaar.config import Settings, get_settings
from token_bazaar.infrastructure.gateway import RazorpayGatewayClient
from token_bazaar.infrastructure.memory_store import (
    InMemoryListingStore,
    InMemoryPayoutStore,
    InMemoryPurchaseLock,
    InMemoryTransactionLedger,
)
from token_bazaar.logging_config import get_logger, setup_logging
from token_bazaar.services.marketplace_service import MarketplaceService
from token_bazaar.services.settlement_service import SettlementOrchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings: Settings = app.state.settings

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        store=settings.store_backend,
        lock=settings.lock_backend,
        escrow=settings.escrow_enabled,
    )

    # 2. System of record
    app.state.database = None
    if settings.store_backend == "database":
        from token_bazaar.infrastructure.database import (
            Database,
            SqlListingStore,
            SqlPayoutStore,
            SqlTransactionLedger,
        )

        database = Database.from_settings(settings)
        if settings.is_development:
            await database.create_all()
        app.state.database = database
        listings = SqlListingStore(database)
        transactions = SqlTransactionLedger(database)
        payouts = SqlPayoutStore(database)
    else:
        listings = InMemoryListingStore()
        transactions = InMemoryTransactionLedger()
        payouts = InMemoryPayoutStore()

    # 3. Purchase lock
    app.state.redis = None
    if settings.lock_backend == "redis":
        from token_bazaar.infrastructure.redis_lock import RedisPurchaseLock, connect_redis

        app.state.redis = await connect_redis(settings.redis_url)
        purchase_lock = RedisPurchaseLock(
            app.state.redis, ttl_seconds=settings.purchase_lock_ttl_seconds
        )
    else:
        purchase_lock = InMemoryPurchaseLock(ttl_seconds=settings.purchase_lock_ttl_seconds)

    # 4. External collaborators
    gateway = RazorpayGatewayClient(
        key_id=settings.gateway_key_id.get_secret_value(),
        key_secret=settings.gateway_key_secret.get_secret_value(),
        base_url=settings.gateway_base_url,
        timeout_seconds=settings.gateway_timeout_seconds,
    )
    app.state.escrow = None
    if settings.escrow_enabled:
        from token_bazaar.infrastructure.escrow import ChainEscrowReleaser

        app.state.escrow = ChainEscrowReleaser(
            contract_address=settings.escrow_contract_address,
            admin_private_key=settings.escrow_admin_private_key.get_secret_value(),
            rpc_url=settings.chain_rpc_url,
            chain_id=settings.chain_id,
            receipt_timeout_seconds=settings.escrow_timeout_seconds,
        )
    else:
        logger.warning("app.escrow_disabled", detail="tokens will not move on-chain")

    # 5. Services
    app.state.orchestrator = SettlementOrchestrator(
        listings=listings,
        transactions=transactions,
        payouts=payouts,
        purchase_lock=purchase_lock,
        gateway=gateway,
        signature_secret=settings.gateway_key_secret.get_secret_value(),
        escrow=app.state.escrow,
        currency=settings.settlement_currency,
        minor_unit_factor=settings.currency_minor_unit_factor,
        gateway_timeout_seconds=settings.gateway_timeout_seconds,
        escrow_timeout_seconds=settings.escrow_timeout_seconds,
    )
    app.state.marketplace = MarketplaceService(listings, transactions, payouts)

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await gateway.aclose()
    if app.state.redis is not None:
        from token_bazaar.infrastructure.redis_lock import close_redis

        await close_redis(app.state.redis)
    if app.state.database is not None:
        await app.state.database.dispose()
    logger.info("app.stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Token Bazaar",
        description=(
            "Peer-to-peer token marketplace: fiat checkout through a payment "
            "gateway, settlement through an on-chain escrow."
        ),
        version=VERSION,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.settings = settings

    # --- Middleware ---
    from token_bazaar.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from token_bazaar.api.routes.checkout import router as checkout_router
    from token_bazaar.api.routes.health import router as health_router
    from token_bazaar.api.routes.listings import router as listings_router
    from token_bazaar.api.routes.transactions import router as transactions_router

    app.include_router(health_router)
    app.include_router(listings_router)
    app.include_router(checkout_router)
    app.include_router(transactions_router)

    return app


# The app instance used by Uvicorn
app = create_app()
