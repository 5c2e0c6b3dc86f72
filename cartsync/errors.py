"""
Cart Errors

Centralized error messages and the exception taxonomy of the cart engine.
"""

# Validation errors
ERROR_PRODUCT_REQUIRED = "product is required"
ERROR_PRODUCT_ID_REQUIRED = "product_id must be a non-empty string"
ERROR_QUANTITY_NOT_INT = "quantity must be an integer"
ERROR_QUANTITY_NOT_POSITIVE = "quantity must be a positive integer"

# Persistence errors
ERROR_LOCAL_STORE_UNAVAILABLE = "Local cart store unavailable"
ERROR_LOCAL_STORE_CORRUPT = "Local cart data is corrupt"

# Sync errors
ERROR_REMOTE_FETCH_FAILED = "Failed to fetch remote cart"
ERROR_REMOTE_REPLACE_FAILED = "Failed to replace remote cart"
ERROR_IDENTITY_REQUIRED = "Identity required for remote cart"


class CartSyncError(Exception):
    """Base class for cart engine errors."""


class CapacityExceeded(CartSyncError):
    """A requested quantity exceeds the stock ceiling.

    The engine clamps instead of raising; the class exists so callers that
    want a hard failure can call ``CartMutation.raise_for_capacity()``.
    """

    def __init__(self, product_id: str, requested: int, ceiling: int):
        self.product_id = product_id
        self.requested = requested
        self.ceiling = ceiling
        super().__init__(f"Requested {requested} of {product_id}, only {ceiling} available")


class SyncFailure(CartSyncError):
    """The remote cart store rejected or failed a request."""

    def __init__(self, message: str, identity: str | None = None):
        self.identity = identity
        super().__init__(message)


class PersistenceFailure(CartSyncError):
    """The local cart store failed to load or save."""
