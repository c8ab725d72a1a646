"""Domain enumerations for the token marketplace.

These enums define the canonical states used throughout the settlement path.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class ListingStatus(enum.StrEnum):
    """Lifecycle of a sell offer. OPEN is the only non-terminal state."""

    OPEN = "OPEN"
    SOLD = "SOLD"
    CANCELLED = "CANCELLED"


class TransactionStatus(enum.StrEnum):
    """Lifecycle of one settlement attempt.

    PAID means the gateway confirmed the money moved. It is also where a
    transaction rests when the escrow release failed and must be retried.
    """

    PENDING = "PENDING"
    PAID = "PAID"
    RELEASING = "RELEASING"
    RELEASED = "RELEASED"
    FAILED = "FAILED"


class PayoutStatus(enum.StrEnum):
    """Seller payout progress."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


class ErrorKind(enum.StrEnum):
    """Error taxonomy. The API layer maps each kind to an HTTP status class."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    STATE_CONFLICT = "STATE_CONFLICT"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    SECURITY = "SECURITY"
