"""
Marketplace Error Hierarchy

Every failure a marketplace operation can report is a MarketplaceError
carrying the HTTP status it maps to and whether a client retry can succeed:

- ValidationError / LimitExceededError / CapacityExceededError: bad input or
  business-rule limits (400)
- BidConflictError: a bid submission that can never be accepted (400)
- NotFoundError (404), ForbiddenError (403), UnauthenticatedError (401)
- ConflictError: lost a race on a conditional update (409, retry after refresh)
- PartialTransitionError: a conditional update landed but its row could not
  be reloaded (500)
- TransactionUnsupportedError: internal, selects the compensating hire path
- UnexpectedError: anything else (500)
"""

from typing import Type, Tuple


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    error_type: str = "unexpected"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, original_error: Exception = None):
        """
        Initialize error with message and optional original error.

        Args:
            message: Human-readable error message (returned to the client)
            original_error: The underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(MarketplaceError):
    """Input validation failure - blank field, negative amount, etc."""

    error_type: str = "validation"
    status_code: int = 400


class LimitExceededError(MarketplaceError):
    """Per-user creation limit reached (gigs per owner, lifetime bids)."""

    error_type: str = "limit_exceeded"
    status_code: int = 400


class CapacityExceededError(MarketplaceError):
    """Freelancer already holds the maximum number of hired bids."""

    error_type: str = "capacity_exceeded"
    status_code: int = 400


class BidConflictError(MarketplaceError):
    """Bid cannot be placed: gig closed, own gig, or already bid."""

    error_type: str = "bid_conflict"
    status_code: int = 400


class NotFoundError(MarketplaceError):
    """Gig, bid or user does not exist."""

    error_type: str = "not_found"
    status_code: int = 404


class ForbiddenError(MarketplaceError):
    """Requester is not the owner of the resource."""

    error_type: str = "forbidden"
    status_code: int = 403


class UnauthenticatedError(MarketplaceError):
    """No valid identity on the request."""

    error_type: str = "unauthenticated"
    status_code: int = 401


class ConflictError(MarketplaceError):
    """
    A conditional update found the row already transitioned.

    The client should refresh; retrying finds the new, final state.
    """

    error_type: str = "conflict"
    status_code: int = 409
    retryable: bool = True


class PartialTransitionError(MarketplaceError):
    """
    A conditional update matched its row but the updated row could not be
    read back.

    The UPDATE ran in the caller's session: under a transaction it is rolled
    back with everything else, on an autocommit session it has persisted.
    """

    error_type: str = "partial_transition"


class TransactionUnsupportedError(MarketplaceError):
    """The backing store cannot run multi-statement transactions."""

    error_type: str = "transaction_unsupported"


class UnexpectedError(MarketplaceError):
    """Unclassified failure."""

    pass


# Driver messages meaning "this deployment has no multi-statement transactions"
TRANSACTION_UNSUPPORTED_MARKERS: Tuple[str, ...] = (
    "transaction numbers are only allowed on a replica set member",
    "transactions are not supported",
    "does not support transactions",
    "savepoints are not supported",
    "illegaloperation",
)


def is_transaction_unsupported(exception: Exception) -> bool:
    """
    Decide whether an exception means transactions are unavailable.

    Args:
        exception: The exception raised while opening a transaction

    Returns:
        True if the caller should fall back to the compensating protocol
    """
    if isinstance(exception, TransactionUnsupportedError):
        return True

    # sqlalchemy.exc.NotSupportedError wraps the DBAPI error of the same name
    if type(exception).__name__ == "NotSupportedError":
        return True

    text = str(exception).lower()
    return any(marker in text for marker in TRANSACTION_UNSUPPORTED_MARKERS)


def wrap_exception(
    exception: Exception,
    context: str = "",
) -> MarketplaceError:
    """
    Wrap a raw exception as a MarketplaceError.

    MarketplaceErrors pass through unchanged.

    Args:
        exception: The exception to wrap
        context: Additional context string

    Returns:
        MarketplaceError instance
    """
    if isinstance(exception, MarketplaceError):
        return exception

    error_class: Type[MarketplaceError] = UnexpectedError
    message = f"{context}: {str(exception)}" if context else str(exception)
    return error_class(message, original_error=exception)
