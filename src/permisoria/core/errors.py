from __future__ import annotations

from typing import Any


class PermisoriaError(Exception):
    """Base error for all user-facing Permisoria exceptions."""

    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.details = details


class ConfigurationError(PermisoriaError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(PermisoriaError):
    """Raised when .permisoria metadata is missing."""


class ValidationError(PermisoriaError):
    """Raised when input is malformed or incomplete."""

    status_code = 400


class UnauthorizedError(PermisoriaError):
    """Raised when no authenticated actor is attached to a request."""

    status_code = 401


class NotFoundError(PermisoriaError):
    """Raised when a resource is missing or not managed by the acting user."""

    status_code = 404


class ConflictError(PermisoriaError):
    """Raised when an operation violates the verification state machine."""

    status_code = 409


class TransientIOError(PermisoriaError):
    """Raised when storage or network fails in a way that may succeed on retry."""

    status_code = 503
