from typing import Optional


class StorefrontError(Exception):
    """Base class for every error raised by the storefront client."""


class NotAuthenticatedError(StorefrontError):
    """
    A mutation or session-scoped read was attempted without an active session.
    Never retried.
    """

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotReadyError(StorefrontError):
    """No backend client yet, or a session transition is in flight."""


class AuthenticationError(StorefrontError):
    """The identity provider rejected the login."""


class InvalidQuantityError(StorefrontError):
    """Cart quantity outside 1..stock, rejected before any remote call."""

    def __init__(self, quantity: int, stock: Optional[int]):
        self.quantity = quantity
        self.stock = stock
        if stock is None:
            msg = f"Quantity must be at least 1 (got {quantity})."
        else:
            msg = f"Quantity must be between 1 and {stock} (got {quantity})."
        super().__init__(msg)


class RemoteServiceError(StorefrontError):
    """The backend call itself failed (network, service or business rule)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
