"""Listing REST API routes.

Routes:
    POST   /api/v1/listings               — Create an OPEN listing
    GET    /api/v1/listings               — Browse listings (status/seller filters)
    GET    /api/v1/listings/{id}          — Get listing details
    POST   /api/v1/listings/{id}/cancel   — Seller cancels an OPEN listing
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from token_bazaar.api.deps import get_marketplace, get_orchestrator
from token_bazaar.domain.enums import ListingStatus
from token_bazaar.domain.models import TokenInfo
from token_bazaar.schemas.marketplace import (
    CancelListingRequest,
    CreateListingRequest,
    ListingResponse,
)
from token_bazaar.services.marketplace_service import MarketplaceService
from token_bazaar.services.settlement_service import SettlementOrchestrator

router = APIRouter(prefix="/api/v1/listings", tags=["Listings"])


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ListingResponse,
    status_code=201,
    summary="List tokens for sale",
)
async def create_listing(
    request: CreateListingRequest,
    svc: MarketplaceService = Depends(get_marketplace),
) -> ListingResponse:
    listing = await svc.create_listing(
        token=TokenInfo(
            address=request.token_address,
            symbol=request.token_symbol,
            name=request.token_name,
            decimals=request.token_decimals,
        ),
        token_amount=request.token_amount,
        seller_address=request.seller_address,
        asking_price=request.asking_price,
        market_price=request.market_price,
    )
    return ListingResponse.model_validate(listing)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[ListingResponse],
    summary="Browse listings",
)
async def list_listings(
    status: ListingStatus | None = Query(default=None),
    seller: str | None = Query(default=None, description="Only this seller's listings"),
    svc: MarketplaceService = Depends(get_marketplace),
) -> list[ListingResponse]:
    """Newest first. Without a status filter every listing is returned."""
    listings = await svc.list_listings(status=status, seller_address=seller)
    return [ListingResponse.model_validate(listing) for listing in listings]


@router.get(
    "/{listing_id}",
    response_model=ListingResponse,
    summary="Get listing details",
)
async def get_listing(
    listing_id: str,
    svc: MarketplaceService = Depends(get_marketplace),
) -> ListingResponse:
    listing = await svc.get_listing(listing_id)
    return ListingResponse.model_validate(listing)


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


@router.post(
    "/{listing_id}/cancel",
    response_model=ListingResponse,
    summary="Cancel an OPEN listing",
)
async def cancel_listing(
    listing_id: str,
    request: CancelListingRequest,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
) -> ListingResponse:
    """Transitions OPEN -> CANCELLED. Fails with 409 for SOLD or CANCELLED listings."""
    listing = await orchestrator.cancel_listing(listing_id, seller_address=request.seller_address)
    return ListingResponse.model_validate(listing)
