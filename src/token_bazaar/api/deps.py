"""FastAPI dependency injection providers.

Services are built once in the application lifespan and stored on
``app.state``; these providers hand them to route handlers via Depends().
"""

from __future__ import annotations

from fastapi import Request

from token_bazaar.services.marketplace_service import MarketplaceService
from token_bazaar.services.settlement_service import SettlementOrchestrator


def get_orchestrator(request: Request) -> SettlementOrchestrator:
    """Provide the settlement orchestrator."""
    return request.app.state.orchestrator


def get_marketplace(request: Request) -> MarketplaceService:
    """Provide the marketplace read/write service."""
    return request.app.state.marketplace
