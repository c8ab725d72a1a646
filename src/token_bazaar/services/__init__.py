"""Application services — use case orchestration."""

from token_bazaar.services.marketplace_service import MarketplaceService
from token_bazaar.services.settlement_service import SettlementOrchestrator

__all__ = ["MarketplaceService", "SettlementOrchestrator"]
