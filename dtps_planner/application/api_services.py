"""Application services powering the public API endpoints."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from dtps_planner.application.services import PlanningService
from dtps_planner.domain.chain_view import ChainView, effective_status
from dtps_planner.domain.date_math import parse_iso_date
from dtps_planner.domain.entities import FreezeEntry, Phase
from dtps_planner.domain.errors import InvalidDate
from dtps_planner.domain.events import CommandResult
from dtps_planner.domain.freeze_ledger import FreezeSummary


class _DateParserMixin:
    """Shared helpers for services that accept ISO date strings."""

    @staticmethod
    def _parse_iso_date(value: str, field: str) -> date:
        try:
            return parse_iso_date(value)
        except InvalidDate as exc:
            raise ValueError(f"Invalid date value for '{field}': {value}") from exc

    def _parse_optional_date(self, value: Optional[str], field: str) -> Optional[date]:
        if value is None or value == "":
            return None
        return self._parse_iso_date(value, field)

    def _parse_date_list(self, values: Iterable[str], field: str) -> List[date]:
        return [self._parse_iso_date(value, field) for value in values]


def serialize_freeze_entry(entry: FreezeEntry) -> Dict[str, Any]:
    return {
        "frozen_date": entry.frozen_date.isoformat(),
        "appended_date": entry.appended_date.isoformat(),
        "created_at": entry.created_at.isoformat(),
    }


def serialize_phase(phase: Phase, today: Optional[date] = None) -> Dict[str, Any]:
    payload = {
        "phase_id": phase.phase_id,
        "purchase_id": phase.purchase_id,
        "client_id": phase.client_id,
        "name": phase.name,
        "start_date": phase.start_date.isoformat(),
        "end_date": phase.end_date.isoformat(),
        "original_duration_days": phase.original_duration_days,
        "status": phase.status.value,
        "total_freeze_count": phase.total_freeze_count,
        "total_pause_days": phase.total_pause_days,
        "parent_purchase_id": phase.parent_purchase_id,
        "freeze_entries": [serialize_freeze_entry(entry) for entry in phase.freeze_entries],
    }
    if today is not None:
        payload["effective_status"] = effective_status(phase, today).value
    return payload


def serialize_result(result: CommandResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "phases": [serialize_phase(phase) for phase in result.phases],
        "events": [event.to_dict() for event in result.events],
    }
    if result.purchase is not None:
        payload["purchase"] = {
            "purchase_id": result.purchase.purchase_id,
            "days_used": result.purchase.days_used,
            "remaining_days": result.purchase.remaining_days,
        }
    if "end_date_extended" in result.details:
        payload["end_date_extended"] = result.details["end_date_extended"]
    return payload


def serialize_freeze_summary(summary: FreezeSummary) -> Dict[str, Any]:
    return {
        "phase_id": summary.phase_id,
        "duration_days": summary.duration_days,
        "allowed_freeze_days": summary.allowed_freeze_days,
        "total_freeze_count": summary.total_freeze_count,
        "remaining_freeze_days": summary.remaining_freeze_days,
        "can_freeze": summary.can_freeze,
        "shared": summary.shared,
        "entries": [serialize_freeze_entry(entry) for entry in summary.entries],
    }


def serialize_view(view: ChainView) -> Dict[str, Any]:
    return {
        "label": view.label.value,
        "phase": serialize_phase(view.phase) if view.phase is not None else None,
    }


class PhaseApiService(_DateParserMixin):
    """String-in / dict-out facade over :class:`PlanningService` for the HTTP layer."""

    def __init__(self, planning: PlanningService):
        self._planning = planning

    def create(
        self,
        purchase_id: str,
        duration_days: int,
        start_date: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Dict[str, Any]:
        start = self._parse_optional_date(start_date, "start_date")
        result = self._planning.create_phase(purchase_id, start, duration_days, name=name)
        return serialize_result(result)

    def pause(self, phase_id: str, days: int) -> Dict[str, Any]:
        return serialize_result(self._planning.pause_phase(phase_id, days))

    def resume(self, phase_id: str) -> Dict[str, Any]:
        return serialize_result(self._planning.resume_phase(phase_id))

    def extend(self, phase_id: str, new_start_date: str) -> Dict[str, Any]:
        start = self._parse_iso_date(new_start_date, "new_start_date")
        return serialize_result(self._planning.extend_phase(phase_id, start))

    def freeze(self, phase_id: str, dates: Iterable[str]) -> Dict[str, Any]:
        parsed = self._parse_date_list(dates, "dates")
        return serialize_result(self._planning.freeze_dates(phase_id, parsed))

    def unfreeze(self, phase_id: str, dates: Iterable[str]) -> Dict[str, Any]:
        parsed = self._parse_date_list(dates, "dates")
        return serialize_result(self._planning.unfreeze_dates(phase_id, parsed))

    def duplicate(self, phase_id: str, start_date: Optional[str] = None) -> Dict[str, Any]:
        start = self._parse_optional_date(start_date, "start_date")
        return serialize_result(self._planning.duplicate_phase(phase_id, start))

    def delete(self, phase_id: str) -> Dict[str, Any]:
        return serialize_result(self._planning.delete_phase(phase_id))

    def freeze_info(self, phase_id: str) -> Dict[str, Any]:
        return serialize_freeze_summary(self._planning.freeze_info(phase_id))

    def client_phases(self, client_id: str) -> Dict[str, Any]:
        today = self._planning.clock()
        phases = self._planning.client_chain(client_id)
        return {
            "client_id": client_id,
            "phases": [serialize_phase(phase, today) for phase in phases],
            "next_available_start": self._planning.suggest_next_start(client_id).isoformat(),
        }

    def view(self, client_id: str, today: Optional[str] = None) -> Dict[str, Any]:
        target = self._parse_optional_date(today, "today")
        return serialize_view(self._planning.current_view(client_id, target))

    def allowance(self, client_id: str, requested_days: int) -> Dict[str, Any]:
        return self._planning.allowance_check(client_id, requested_days)
