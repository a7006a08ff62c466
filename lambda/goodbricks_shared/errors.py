"""
Domain error classes for the GoodBricks email platform.

These error classes provide explicit, typed exceptions that map cleanly to API responses.
All errors follow the principle of "fail fast" and provide clear error codes and messages.
"""

from typing import Dict, Any, Optional


class DomainError(Exception):
    """
    Base class for all domain errors.

    Domain errors are explicit business logic errors that should be mapped
    to appropriate HTTP responses by the handler layer.
    """

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class ValidationError(DomainError):
    """
    Raised when input validation fails.

    Maps to HTTP 400 Bad Request.
    Details should contain field-level validation errors.
    """

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__('VALIDATION_ERROR', message, details)


class InvalidTokenError(ValidationError):
    """
    Raised when a pagination token cannot be decoded.

    Maps to HTTP 400 Bad Request.
    """

    def __init__(self, message: str = 'Invalid nextToken format'):
        super().__init__(message, {})
        self.code = 'INVALID_TOKEN'


class InvalidStateError(DomainError):
    """
    Raised when a campaign status transition is not allowed.

    Maps to HTTP 400 Bad Request.
    """

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__('INVALID_STATE', message, details)


class NotFoundError(DomainError):
    """
    Raised when a requested resource does not exist.

    Maps to HTTP 404 Not Found.
    """

    status_code = 404

    def __init__(self, message: str):
        super().__init__('NOT_FOUND', message, {})


class ConflictError(DomainError):
    """
    Raised when a conditional write fails because the item already exists
    or was changed by another writer.

    Maps to HTTP 409 Conflict.
    """

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__('CONFLICT', message, details)


class InternalError(DomainError):
    """
    Raised for unexpected store or provider failures.

    Maps to HTTP 500. The message is never taken from the provider error.
    """

    status_code = 500

    def __init__(self, message: str = 'Internal Server Error'):
        super().__init__('INTERNAL_ERROR', message, {})
