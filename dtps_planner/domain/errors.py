"""Scheduling failures raised by the domain layer.

All of these are local validation failures. They are raised synchronously,
never retried, and carry enough context (``to_dict``) for a caller to render
a useful message.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value


class SchedulingError(Exception):
    """Base class for meal-plan scheduling failures."""

    code = "scheduling_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        payload.update({key: _iso(value) for key, value in self.context.items()})
        return payload


class AllowanceExceeded(SchedulingError):
    code = "allowance_exceeded"

    def __init__(self, requested: int, remaining: int, reason: str | None = None) -> None:
        message = reason or f"Only {remaining} days remaining in plan (requested {requested})"
        super().__init__(message, requested_days=requested, remaining_days=remaining)
        self.requested = requested
        self.remaining = remaining


class OutOfWindow(SchedulingError):
    code = "out_of_window"

    def __init__(self, candidate: date, expected_start: Optional[date], expected_end: Optional[date]) -> None:
        super().__init__(
            f"Start date {candidate.isoformat()} is outside the purchase window "
            f"({_iso(expected_start) or '...'} to {_iso(expected_end) or '...'})",
            candidate_start=candidate,
            expected_start=expected_start,
            expected_end=expected_end,
        )
        self.candidate = candidate


class Overlap(SchedulingError):
    code = "overlap"

    def __init__(self, conflicting_phase_id: str, next_available_start: date) -> None:
        super().__init__(
            f"Dates overlap phase {conflicting_phase_id}; next available start is "
            f"{next_available_start.isoformat()}",
            conflicting_phase_id=conflicting_phase_id,
            next_available_start=next_available_start,
        )
        self.conflicting_phase_id = conflicting_phase_id
        self.next_available_start = next_available_start


class InvalidRange(SchedulingError):
    code = "invalid_range"

    def __init__(self, start: Any, end: Any, reason: str | None = None) -> None:
        message = reason or f"Start date {_iso(start)} is after end date {_iso(end)}"
        super().__init__(message, start_date=start, end_date=end)


class InvalidDate(SchedulingError):
    code = "invalid_date"

    def __init__(self, value: Any, reason: str) -> None:
        super().__init__(f"Invalid date {_iso(value)}: {reason}", date=value)
        self.value = value
        self.reason = reason


class QuotaExceeded(SchedulingError):
    code = "quota_exceeded"

    def __init__(self, requested: int, remaining: int, allowed: int) -> None:
        super().__init__(
            f"Cannot freeze {requested} days. Only {remaining} days remaining.",
            requested_days=requested,
            remaining_freeze_days=remaining,
            allowed_freeze_days=allowed,
        )
        self.requested = requested
        self.remaining = remaining


class NotFrozen(SchedulingError):
    code = "not_frozen"

    def __init__(self, value: date) -> None:
        super().__init__(f"Date {value.isoformat()} is not frozen", date=value)
        self.value = value


class InvalidTransition(SchedulingError):
    code = "invalid_transition"

    def __init__(self, phase_id: str, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} phase {phase_id} while it is {status}",
            phase_id=phase_id,
            status=status,
        )


__all__ = [
    "SchedulingError",
    "AllowanceExceeded",
    "OutOfWindow",
    "Overlap",
    "InvalidRange",
    "InvalidDate",
    "QuotaExceeded",
    "NotFrozen",
    "InvalidTransition",
]
