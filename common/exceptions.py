"""
Misab Storefront - Custom Exceptions
======================================
Business-level exceptions that can be caught and converted to HTTP responses.
"""

from fastapi import status


class StorefrontError(Exception):
    """Base exception for all business logic errors."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Something went wrong."):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(StorefrontError):
    """Raised when an external service is called without its credentials."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class UnauthenticatedError(StorefrontError):
    """Raised when no bearer token is cached for the session."""
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Please sign in to continue."):
        super().__init__(message)


class InvalidQuantityError(StorefrontError):
    """Raised for a negative (or, when adding, non-positive) quantity."""

    def __init__(self, quantity=None):
        msg = f"Invalid quantity: {quantity}" if quantity is not None else "Invalid quantity."
        super().__init__(msg)


class EmptyCodeError(StorefrontError):
    """Raised when a blank discount code is submitted."""

    def __init__(self):
        super().__init__("Please enter a discount code")


class VariantResolutionError(StorefrontError):
    """One cart line could not be mapped to a catalog variant."""

    def __init__(self, product_key: str, handle: str = ""):
        self.product_key = product_key
        self.handle = handle
        super().__init__(f"Could not resolve a variant for '{handle or product_key}'")


class RemoteSyncError(StorefrontError):
    """Raised when the remote cart could not be created, replaced or priced."""
    status_code = status.HTTP_502_BAD_GATEWAY


class CodeInvalidError(StorefrontError):
    """Raised when the remote cart rejects a discount code outright."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class CodeNotApplicableError(StorefrontError):
    """Raised when a known discount code does not apply to the current lines."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, code: str = ""):
        self.code = code
        super().__init__("This discount code is not applicable to the current cart")


class PaymentFailedError(StorefrontError):
    """Raised for payment gateway errors."""
    status_code = status.HTTP_402_PAYMENT_REQUIRED


class OrderCreationError(StorefrontError):
    """Raised when a paid order could not be recorded with the commerce backend."""
    status_code = status.HTTP_502_BAD_GATEWAY


class NotFoundError(StorefrontError):
    """Raised when a requested resource doesn't exist."""
    status_code = status.HTTP_404_NOT_FOUND


class SharedStoreError(StorefrontError):
    """Raised when the shared real-time store cannot be read or written."""
    status_code = status.HTTP_502_BAD_GATEWAY


class OrderHistoryError(StorefrontError):
    """Raised when past orders cannot be fetched or an order cannot be cancelled."""
    status_code = status.HTTP_502_BAD_GATEWAY
