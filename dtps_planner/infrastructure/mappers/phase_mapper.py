"""Mapping utilities for converting between persistence rows and domain phases."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Sequence

from dtps_planner.domain.date_math import coerce_date
from dtps_planner.domain.entities import (
    FreezeEntry,
    Phase,
    PhaseStatus,
    Purchase,
    PurchaseStatus,
)
from dtps_planner.domain.errors import InvalidDate


class PhaseMappingError(ValueError):
    """Raised when a persistence row cannot be converted to a domain object."""


@dataclass
class PhaseMapper:
    """Translate between database rows and ``Purchase`` / ``Phase`` objects."""

    def purchase_from_row(self, row: Mapping[str, Any]) -> Purchase:
        if row is None:
            raise PhaseMappingError("purchase row is required")

        total = self._to_int(row.get("total_purchased_days"))
        if total is None:
            raise PhaseMappingError("total_purchased_days is required")

        return Purchase(
            purchase_id=str(row["purchase_id"]),
            client_id=str(row["client_id"]),
            total_purchased_days=total,
            days_used=self._to_int(row.get("days_used")) or 0,
            expected_start_date=self._to_date(row.get("expected_start_date")),
            expected_end_date=self._to_date(row.get("expected_end_date")),
            status=self._to_enum(PurchaseStatus, row.get("status"), PurchaseStatus.ACTIVE),
            allowed_freeze_days=self._to_int(row.get("allowed_freeze_days")),
        )

    def purchase_to_row(self, purchase: Purchase) -> Dict[str, Any]:
        return {
            "purchase_id": purchase.purchase_id,
            "client_id": purchase.client_id,
            "total_purchased_days": purchase.total_purchased_days,
            "days_used": purchase.days_used,
            "expected_start_date": purchase.expected_start_date,
            "expected_end_date": purchase.expected_end_date,
            "status": purchase.status.value,
            "allowed_freeze_days": purchase.allowed_freeze_days,
        }

    def phase_from_rows(
        self,
        phase_row: Mapping[str, Any],
        freeze_rows: Sequence[Mapping[str, Any]] = (),
    ) -> Phase:
        """Build a :class:`Phase` from its row and its freeze-entry rows."""

        if phase_row is None:
            raise PhaseMappingError("phase_row is required")

        start_date = self._to_date(phase_row.get("start_date"))
        end_date = self._to_date(phase_row.get("end_date"))
        if start_date is None or end_date is None:
            raise PhaseMappingError("start_date and end_date are required")

        duration = self._to_int(phase_row.get("original_duration_days"))
        if duration is None:
            raise PhaseMappingError("original_duration_days is required")

        ordered_rows = sorted(freeze_rows, key=lambda r: (self._to_int(r.get("position")) or 0))
        entries = [self._build_entry(row) for row in ordered_rows]

        return Phase(
            phase_id=str(phase_row["phase_id"]),
            purchase_id=str(phase_row["purchase_id"]),
            client_id=str(phase_row["client_id"]),
            start_date=start_date,
            end_date=end_date,
            original_duration_days=duration,
            status=self._to_enum(PhaseStatus, phase_row.get("status"), PhaseStatus.ACTIVE),
            freeze_entries=entries,
            total_pause_days=self._to_int(phase_row.get("total_pause_days")) or 0,
            parent_purchase_id=phase_row.get("parent_purchase_id"),
            name=phase_row.get("name"),
            meals=self.meals_from_json(phase_row.get("meals")),
        )

    def phase_to_row(self, phase: Phase) -> Dict[str, Any]:
        return {
            "phase_id": phase.phase_id,
            "purchase_id": phase.purchase_id,
            "client_id": phase.client_id,
            "name": phase.name,
            "start_date": phase.start_date,
            "end_date": phase.end_date,
            "original_duration_days": phase.original_duration_days,
            "status": phase.status.value,
            "total_pause_days": phase.total_pause_days,
            "parent_purchase_id": phase.parent_purchase_id,
            "meals": self.meals_to_json(phase.meals),
        }

    def freeze_entries_to_rows(self, phase: Phase) -> list[Dict[str, Any]]:
        """Rows keep ``position`` so make-up order survives a reload."""

        return [
            {
                "phase_id": phase.phase_id,
                "frozen_date": entry.frozen_date,
                "appended_date": entry.appended_date,
                "created_at": entry.created_at,
                "position": position,
            }
            for position, entry in enumerate(phase.freeze_entries)
        ]

    # --- day content ---------------------------------------------------------

    @staticmethod
    def meals_to_json(meals: Mapping[date, Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
        return {day.isoformat(): dict(content) for day, content in sorted(meals.items())}

    def meals_from_json(self, value: Any) -> Dict[date, Dict[str, Any]]:
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:
                raise PhaseMappingError("meals must be valid JSON") from exc
        if not isinstance(value, Mapping):
            raise PhaseMappingError("meals must be a mapping of ISO dates to day content")

        meals: Dict[date, Dict[str, Any]] = {}
        for key, content in value.items():
            day = self._to_date(key)
            if day is None:
                raise PhaseMappingError(f"meals key {key!r} is not a date")
            if not isinstance(content, Mapping):
                raise PhaseMappingError(f"meals entry for {key} must be a mapping")
            meals[day] = dict(content)
        return meals

    # --- helpers -------------------------------------------------------------

    def _build_entry(self, row: Mapping[str, Any]) -> FreezeEntry:
        frozen = self._to_date(row.get("frozen_date"))
        appended = self._to_date(row.get("appended_date"))
        if frozen is None or appended is None:
            raise PhaseMappingError("freeze rows need frozen_date and appended_date")
        created_at = row.get("created_at")
        if not isinstance(created_at, datetime):
            created_at = datetime.now()
        return FreezeEntry(frozen_date=frozen, appended_date=appended, created_at=created_at)

    def _to_int(self, value: Any) -> int | None:
        if value is None:
            return None
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return None
            try:
                return int(stripped)
            except ValueError as exc:
                raise PhaseMappingError(f"Cannot convert '{value}' to int") from exc
        raise PhaseMappingError(f"Cannot convert type {type(value)!r} to int")

    def _to_date(self, value: Any) -> date | None:
        if value is None or value == "":
            return None
        try:
            return coerce_date(value)
        except InvalidDate as exc:
            raise PhaseMappingError(f"Cannot convert {value!r} to a date") from exc

    @staticmethod
    def _to_enum(enum_cls, value: Any, default):
        if value is None:
            return default
        try:
            return enum_cls(value)
        except ValueError as exc:
            raise PhaseMappingError(f"Unknown {enum_cls.__name__} value {value!r}") from exc
