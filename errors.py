"""Errors raised by the storefront workflow.

Each carries the HTTP status main.py answers with; the body is rendered as
{"detail": message}, same as FastAPI's HTTPException.
"""
from typing import Optional


class StorefrontError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Bad user input: missing customer field, no design, oversized file..."""
    status_code = 400


class NotFound(StorefrontError):
    status_code = 404


class StateConflict(StorefrontError):
    """The requested operation is not allowed in the session's current state."""
    status_code = 409


class UploadError(StorefrontError):
    status_code = 502


class PaymentProviderError(StorefrontError):
    status_code = 402


class PersistenceError(StorefrontError):
    """Order header or item could not be written after the payment settled."""
    status_code = 500

    def __init__(self, message: str, order_id: Optional[str] = None):
        super().__init__(message)
        self.order_id = order_id
