"""Custom exception hierarchy for planner application orchestration."""

from __future__ import annotations


class ApplicationError(Exception):
    """Base exception for application orchestration failures."""


class NotFoundError(ApplicationError):
    """Raised when a referenced phase, purchase or client record does not exist."""


class DataAccessError(ApplicationError):
    """Raised when persistence layer calls fail during orchestration."""


class CascadeError(DataAccessError):
    """Raised when a multi-phase write fails and the whole cascade is rolled back."""


__all__ = [
    "ApplicationError",
    "NotFoundError",
    "DataAccessError",
    "CascadeError",
]
