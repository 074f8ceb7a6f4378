# Overview: Error taxonomy shared by the stock services and the HTTP layer.

"""
Every service failure raised to a caller is a StockError subclass.

Each class carries the HTTP status the API answers with, so routes can map
failures without knowing which service raised them. A StockError always means
the ledger was left unchanged: services raise before flushing, and routes
roll the session back.
"""


class StockError(Exception):
    """Base class for reportable stock failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StockError, ValueError):
    """400-level input problem (bad shape, range or enum value)."""

    status_code = 400


class NotFoundError(StockError, LookupError):
    """Unknown product, distribution, adjustment or user id."""

    status_code = 404


class PermissionDeniedError(StockError):
    """Actor role does not allow the operation."""

    status_code = 403


class ConflictError(StockError):
    """409-level uniqueness conflict (e.g., duplicate SKU)."""

    status_code = 409


class InvalidTransitionError(StockError):
    """Illegal location pair or distribution status jump."""

    status_code = 409


class InvalidStateError(StockError):
    """Operation not allowed in the record's current state."""

    status_code = 409


class InsufficientStockError(StockError):
    """Applying the adjustment would drive a bucket negative."""

    status_code = 409

    def __init__(self, bucket: str, available: int, requested: int):
        super().__init__(
            f"Insufficient {bucket}: available {available}, requested {requested}"
        )
        self.bucket = bucket
        self.available = available
        self.requested = requested


class ConcurrencyConflictError(StockError):
    """
    Optimistic counter update lost the race.

    Safe to retry once with fresh counters.
    """

    status_code = 409
    retryable = True
