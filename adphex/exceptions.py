"""Adphex exception hierarchy.

Base exceptions for the client and engine layers with correlation ID support.

Usage:
    from adphex.exceptions import AssignmentError, TransportError

    try:
        await client.assign_account(["d1"], account_id="a1")
    except AssignmentError as e:
        logger.error("Assignment failed (%s): %s", e.correlation_id, e)
"""

import uuid


class AdphexError(Exception):
    """Base exception for all Adphex errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class TransportError(AdphexError):
    """The chat request failed before or while streaming.

    ``status_code`` is set when the server answered with a non-2xx status.
    """

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class AccountsError(AdphexError):
    """Errors fetching the account list."""

    pass


class AssignmentError(AdphexError):
    """Errors from the account assignment endpoint."""

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class ValidationError(AdphexError):
    """Errors from input validation (beyond Pydantic)."""

    pass


class ConfigurationError(AdphexError):
    """Errors from application configuration."""

    pass
