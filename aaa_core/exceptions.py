# aaa_core/exceptions.py
"""
Typed errors raised by the AAA core stores and session manager.
"""

from typing import Any


class AAACoreError(Exception):
    """Base exception for all AAA core errors."""

    status_code = 500
    error_code = "server_error"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(AAACoreError):
    """Raised when supplied data is invalid."""

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self, message: str, field: str | None = None, value: Any = None, **kwargs: Any
    ):
        details = {"field": field, "value": value, **kwargs}
        super().__init__(message, details)
        self.field = field
        self.value = value


# Lookup misses
class NotFound(AAACoreError):
    """Raised when a requested record does not exist."""

    status_code = 404
    error_code = "not_found"


class SessionNotFound(NotFound):
    """Raised when no Open accounting session matches an update or stop."""

    error_code = "session_not_found"


# Uniqueness violations
class DuplicateError(AAACoreError):
    """Base class for uniqueness violations enforced by the store."""

    status_code = 409
    error_code = "duplicate"


class DuplicateUniqueId(DuplicateError):
    """Raised when an accounting start reuses an existing unique id."""

    error_code = "duplicate_unique_id"


class DuplicateNas(DuplicateError):
    """Raised when registering a NAS address that is already known."""

    error_code = "duplicate_nas"


class DuplicateMembership(DuplicateError):
    """Raised when a subscriber is already a member of the group."""

    error_code = "duplicate_membership"


# Soft outcome
class AlreadyClosed(AAACoreError):
    """Stop received for a session that is already Closed.

    Not an outage: transports acknowledge it like a successful stop.
    """

    status_code = 200
    error_code = "already_closed"
    fatal = False


# Storage availability
class StorageUnavailable(AAACoreError):
    """Raised on I/O, lock-timeout or connectivity failures of the store."""

    status_code = 503
    error_code = "storage_unavailable"
    retryable = True
