# Overview: Exception taxonomy shared by the ledger, processors and routes.

"""
Service errors

Every error carries a human-readable message, an optional details dict and
the HTTP status the API layer reports for it. Routes translate these into
{"error": ..., "details": ...} bodies; nothing else leaks to the caller.
"""


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""


class ConflictError(ServiceError, ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""
    status_code = 409


class NotFoundError(ServiceError):
    status_code = 404


class ProductNotFound(NotFoundError):
    """
    A referenced product does not exist.

    Reported as 400 by the sale and purchase flows, where it aborts a batch,
    and as 404 by the product routes.
    """


class SaleNotFound(NotFoundError):
    pass


class OrderNotFound(NotFoundError):
    pass


class CustomerNotFound(NotFoundError):
    pass


class SupplierNotFound(NotFoundError):
    pass


class InsufficientStock(ServiceError):
    """Requested quantity exceeds the stock that is available to commit."""


class ConcurrencyConflict(ServiceError):
    """Retryable: a unique number collided or a lock could not be obtained."""
    status_code = 409


class StorageError(ServiceError):
    """The atomic commit failed for a non-retryable storage reason."""
    status_code = 500
