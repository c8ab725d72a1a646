"""Database infrastructure — engine, ORM models, and stores."""

from token_bazaar.infrastructure.database.engine import Database
from token_bazaar.infrastructure.database.orm_models import (
    Base,
    ListingRow,
    PayoutRow,
    TransactionRow,
)
from token_bazaar.infrastructure.database.stores import (
    SqlListingStore,
    SqlPayoutStore,
    SqlTransactionLedger,
)

__all__ = [
    "Base",
    "Database",
    "ListingRow",
    "PayoutRow",
    "TransactionRow",
    "SqlListingStore",
    "SqlPayoutStore",
    "SqlTransactionLedger",
]
