"""Domain layer — pure business logic with zero framework dependencies."""

from token_bazaar.domain.enums import (
    ErrorKind,
    ListingStatus,
    PayoutStatus,
    TransactionStatus,
)
from token_bazaar.domain.exceptions import (
    InvalidSignatureError,
    InvalidStateTransitionError,
    ListingLockedError,
    ListingNotFoundError,
    MarketplaceError,
    TransactionNotFoundError,
)
from token_bazaar.domain.models import Listing, Payout, TokenInfo, Transaction
from token_bazaar.domain.signature import (
    compute_payment_signature,
    verify_payment_signature,
)
from token_bazaar.domain.state_machine import (
    ListingStateMachine,
    PayoutStateMachine,
    TransactionStateMachine,
    validate_transition,
)

__all__ = [
    "ErrorKind",
    "ListingStatus",
    "PayoutStatus",
    "TransactionStatus",
    "InvalidSignatureError",
    "InvalidStateTransitionError",
    "ListingLockedError",
    "ListingNotFoundError",
    "MarketplaceError",
    "TransactionNotFoundError",
    "Listing",
    "Payout",
    "TokenInfo",
    "Transaction",
    "compute_payment_signature",
    "verify_payment_signature",
    "ListingStateMachine",
    "PayoutStateMachine",
    "TransactionStateMachine",
    "validate_transition",
]
