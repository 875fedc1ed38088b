"""Placement checks for a candidate phase against a client's chain."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from dtps_planner.domain.date_math import add_days
from dtps_planner.domain.entities import Phase, order_chain, schedulable
from dtps_planner.domain.errors import OutOfWindow, Overlap


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Closed-interval intersection test."""

    return a_start <= b_end and a_end >= b_start


@dataclass(frozen=True)
class OverlapResult:
    conflicting_phase: Phase
    next_available_start: date


class OverlapValidator:
    """Detects date-range collisions and purchase-window violations."""

    def find_overlap(
        self,
        candidate_start: date,
        candidate_end: date,
        existing_phases: Iterable[Phase],
        exclude_phase_id: Optional[str] = None,
    ) -> Optional[OverlapResult]:
        """Return the first phase (in chain order) colliding with the candidate."""

        for phase in order_chain(schedulable(existing_phases)):
            if phase.phase_id == exclude_phase_id:
                continue
            if ranges_overlap(candidate_start, candidate_end, phase.start_date, phase.end_date):
                return OverlapResult(
                    conflicting_phase=phase,
                    next_available_start=add_days(phase.end_date, 1),
                )
        return None

    def ensure_no_overlap(
        self,
        candidate_start: date,
        candidate_end: date,
        existing_phases: Iterable[Phase],
        exclude_phase_id: Optional[str] = None,
    ) -> None:
        result = self.find_overlap(candidate_start, candidate_end, existing_phases, exclude_phase_id)
        if result is not None:
            raise Overlap(result.conflicting_phase.phase_id, result.next_available_start)

    def validate_start_within_window(
        self,
        candidate_start: date,
        expected_start: Optional[date] = None,
        expected_end: Optional[date] = None,
    ) -> None:
        """Only the start is constrained; a phase may run past the expected end."""

        if expected_start is not None and candidate_start < expected_start:
            raise OutOfWindow(candidate_start, expected_start, expected_end)
        if expected_end is not None and candidate_start > expected_end:
            raise OutOfWindow(candidate_start, expected_start, expected_end)

    def suggest_next_start(self, existing_phases: Iterable[Phase], default: date) -> date:
        """Day after the latest end date in the chain, or ``default`` when empty."""

        phases = schedulable(existing_phases)
        if not phases:
            return default
        return add_days(max(phase.end_date for phase in phases), 1)
