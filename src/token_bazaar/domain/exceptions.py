"""Domain exceptions for the token marketplace.

These exceptions are framework-agnostic and represent business rule violations.
Each carries an ErrorKind; the API layer's middleware translates the kind
into an HTTP status and the code into the response body.
"""

from token_bazaar.domain.enums import ErrorKind


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Validation Errors ---


class InvalidRequestError(MarketplaceError):
    """Raised when required input is missing or malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_REQUEST")


# --- Lookup Errors ---


class ListingNotFoundError(MarketplaceError):
    """Raised when a listing ID does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, listing_id: str) -> None:
        super().__init__(message=f"Listing not found: {listing_id}", code="NOT_FOUND")
        self.listing_id = listing_id


class TransactionNotFoundError(MarketplaceError):
    """Raised when no transaction matches an ID or gateway order ID."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, reference: str) -> None:
        super().__init__(
            message=f"Transaction not found for: {reference}",
            code="NOT_FOUND",
        )
        self.reference = reference


class PayoutNotFoundError(MarketplaceError):
    """Raised when a payout ID does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, payout_id: str) -> None:
        super().__init__(message=f"Payout not found: {payout_id}", code="NOT_FOUND")


# --- State Conflicts ---


class InvalidStateTransitionError(MarketplaceError):
    """Raised when an entity is asked to move to a state it cannot reach.

    Example: a SOLD listing entering checkout, or a CANCELLED listing
    being cancelled again.
    """

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, entity: str, current_state: str, attempted: str) -> None:
        super().__init__(
            message=f"Invalid {entity} state transition: {current_state} -> {attempted}",
            code="INVALID_STATE",
        )
        self.entity = entity
        self.current_state = current_state
        self.attempted_state = attempted


class ListingLockedError(MarketplaceError):
    """Raised when another buyer holds the purchase lock for a listing."""

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, listing_id: str) -> None:
        super().__init__(
            message=(
                "Another buyer is currently processing this listing. "
                "Please try again shortly."
            ),
            code="CONFLICT",
        )
        self.listing_id = listing_id


class ListingUnavailableError(MarketplaceError):
    """Raised when a payment lands for a listing that is no longer OPEN.

    The payment is recorded (transaction stays PAID) but no tokens are
    released; the buyer is owed a refund.
    """

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, listing_id: str, status: str) -> None:
        super().__init__(
            message=(
                f"Listing {listing_id} is {status}; payment recorded, "
                "tokens not released. A refund will be issued."
            ),
            code="LISTING_UNAVAILABLE",
        )
        self.listing_id = listing_id


class DuplicateOrderError(MarketplaceError):
    """Raised when a gateway order ID is already bound to a transaction."""

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, order_id: str) -> None:
        super().__init__(
            message=f"Gateway order already recorded: {order_id}",
            code="DUPLICATE_ORDER",
        )


class ConcurrentUpdateError(MarketplaceError):
    """Raised when a status write loses to another writer.

    The stored status no longer matched the one the write was guarded on,
    so the write was not applied.
    """

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity.capitalize()} {entity_id} was updated concurrently",
            code="CONCURRENT_UPDATE",
        )
        self.entity = entity
        self.entity_id = entity_id


class ReleaseInProgressError(MarketplaceError):
    """Raised when a transaction is mid-release and cannot be touched."""

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            message=f"Escrow release already in progress for transaction {transaction_id}",
            code="RELEASE_IN_PROGRESS",
        )


# --- Upstream Errors ---


class GatewayError(MarketplaceError):
    """Raised when the payment gateway call fails. Retryable by the caller."""

    kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message=message, code="BAD_GATEWAY")
        self.status_code = status_code


class GatewayAuthError(GatewayError):
    """Raised when the gateway rejects our credentials (misconfiguration)."""

    def __init__(self) -> None:
        super().__init__(
            message=(
                "Payment gateway authentication failed. "
                "Verify the configured key ID and key secret."
            ),
            status_code=401,
        )
        self.code = "GATEWAY_AUTH_FAILED"


class EscrowReleaseError(MarketplaceError):
    """Raised by escrow adapters when the on-chain release does not confirm.

    Settlement absorbs this error: the transaction reverts to PAID.
    """

    kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message=message, code="ESCROW_RELEASE_FAILED")
        self.tx_hash = tx_hash


# --- Security Errors ---


class InvalidSignatureError(MarketplaceError):
    """Raised when the gateway callback signature does not verify."""

    kind = ErrorKind.SECURITY

    def __init__(self) -> None:
        super().__init__(
            message="Invalid payment signature. Potential tampering detected.",
            code="INVALID_SIGNATURE",
        )
