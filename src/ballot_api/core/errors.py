"""Typed service failures.

Every expected, user-facing failure raised by a service is a ``ServiceError``
carrying an ``ErrorCategory`` and a stable machine-readable ``code``. The API
layer maps categories to HTTP status codes in a single handler.
"""

import enum


class ErrorCategory(enum.StrEnum):
    """Broad class of a service failure."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STATE = "state"
    RATE_LIMITED = "rate_limited"
    INFRASTRUCTURE = "infrastructure"


class ServiceError(ValueError):
    """Base class for expected service failures.

    Args:
        message: Human-readable description.
        code: Machine-readable failure code.
        category: Failure category; defaults to the class attribute.
    """

    category: ErrorCategory = ErrorCategory.VALIDATION
    default_code: str = "invalid_request"

    def __init__(self, message: str, *, code: str | None = None, category: ErrorCategory | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if category is not None:
            self.category = category


class NotificationError(ServiceError):
    """Raised when an issued code could not be handed to the delivery channel."""

    category = ErrorCategory.INFRASTRUCTURE
    default_code = "notification_failed"
