from __future__ import annotations


class RMSError(Exception):
    """Base class for errors raised inside service code."""

    message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class AuthenticationRequired(RMSError):
    message = "Authentication required"


class ValidationFailed(RMSError):
    """Input failed schema checks. Always field scoped."""

    message = "Please check the form for validation errors"

    def __init__(self, errors: dict[str, list[str]], message: str | None = None):
        super().__init__(message)
        self.errors = errors


class NotFound(RMSError):
    message = "Not found"


class PersistenceFailure(RMSError):
    """The store is unreachable or a query failed.

    The message is generic; the underlying exception is chained and logged,
    never surfaced to callers.
    """

    message = "A database error occurred. Please try again."
