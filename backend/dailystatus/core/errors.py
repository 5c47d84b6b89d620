"""Domain exceptions raised by services and mapped to HTTP responses in main."""

from typing import Any


class DomainError(Exception):
    """Base exception for business rule violations."""
    status_code = 400

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class AuthenticationError(DomainError):
    """Raised when credentials or tokens are invalid."""
    status_code = 401


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""
    status_code = 403

    def __init__(self, message: str = "Not authorized", details: Any = None):
        super().__init__(message, details)


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""
    status_code = 404


class ImportRejectedError(DomainError):
    """Raised when an import batch cannot be processed at all."""
