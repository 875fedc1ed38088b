"""Freeze bookkeeping for meal-plan phases.

Freezing a day skips it and relocates its content to a make-up day appended
after the phase's current end date. The phase's original duration never
changes; only its visible end date moves.

A ledger is either phase-level (the phase has no ``parent_purchase_id``) or
shared by every phase carrying the same ``parent_purchase_id``. A shared
ledger pools the quota, but which dates may be frozen and where make-up days
land are always decided by the single phase being edited.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from dtps_planner.domain import logging as domain_logging
from dtps_planner.domain.configuration import get_settings
from dtps_planner.domain.date_math import add_days, coerce_date
from dtps_planner.domain.entities import FreezeEntry, Phase, Purchase
from dtps_planner.domain.errors import InvalidDate, NotFrozen, QuotaExceeded

FROZEN_FLAG = "is_frozen"
RECOVERY_FLAG = "is_freeze_recovery"
ORIGINAL_DATE_KEY = "original_freeze_date"


@dataclass(frozen=True)
class FreezeSummary:
    phase_id: str
    duration_days: int
    allowed_freeze_days: int
    total_freeze_count: int
    remaining_freeze_days: int
    shared: bool
    entries: Tuple[FreezeEntry, ...]

    @property
    def can_freeze(self) -> bool:
        return self.remaining_freeze_days > 0


class FreezeLedger:
    """Applies freeze/unfreeze requests to a phase and enforces the quota."""

    def __init__(
        self,
        *,
        freeze_days_per_month: Optional[int] = None,
        month_length_days: Optional[int] = None,
    ) -> None:
        self._freeze_days_per_month = freeze_days_per_month
        self._month_length_days = month_length_days

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------
    def cap_for_days(self, days: int) -> int:
        """Freeze days granted for a plan of ``days``: a fixed amount per started month."""

        domain_settings = get_settings()
        per_month = self._freeze_days_per_month
        if per_month is None:
            per_month = domain_settings.freeze_days_per_month
        month_length = self._month_length_days or domain_settings.freeze_month_length_days
        if days <= 0:
            return 0
        return math.ceil(days / month_length) * per_month

    def allowed_freeze_days(self, phase: Phase, purchase: Optional[Purchase] = None) -> int:
        if purchase is not None and purchase.allowed_freeze_days is not None:
            return purchase.allowed_freeze_days
        if phase.shares_freeze_ledger and purchase is not None:
            return self.cap_for_days(purchase.total_purchased_days)
        return self.cap_for_days(phase.original_duration_days)

    def ledger_members(self, phase: Phase, chain: Iterable[Phase] = ()) -> List[Phase]:
        """Phases whose freezes count against ``phase``'s quota (``phase`` included)."""

        if not phase.shares_freeze_ledger:
            return [phase]
        members = [phase]
        for other in chain:
            if other.phase_id == phase.phase_id:
                continue
            if other.parent_purchase_id == phase.parent_purchase_id:
                members.append(other)
        return members

    def total_freeze_count(self, phase: Phase, chain: Iterable[Phase] = ()) -> int:
        return sum(member.total_freeze_count for member in self.ledger_members(phase, chain))

    def remaining(
        self,
        phase: Phase,
        chain: Iterable[Phase] = (),
        purchase: Optional[Purchase] = None,
    ) -> int:
        allowed = self.allowed_freeze_days(phase, purchase)
        return max(0, allowed - self.total_freeze_count(phase, chain))

    def summary(
        self,
        phase: Phase,
        chain: Iterable[Phase] = (),
        purchase: Optional[Purchase] = None,
    ) -> FreezeSummary:
        chain = list(chain)
        allowed = self.allowed_freeze_days(phase, purchase)
        used = self.total_freeze_count(phase, chain)
        return FreezeSummary(
            phase_id=phase.phase_id,
            duration_days=phase.original_duration_days,
            allowed_freeze_days=allowed,
            total_freeze_count=used,
            remaining_freeze_days=max(0, allowed - used),
            shared=phase.shares_freeze_ledger,
            entries=tuple(phase.freeze_entries),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def freeze(
        self,
        phase: Phase,
        dates: Sequence[Any],
        *,
        today: date,
        chain: Iterable[Phase] = (),
        purchase: Optional[Purchase] = None,
        now: Optional[datetime] = None,
    ) -> List[FreezeEntry]:
        """Freeze ``dates`` and append one make-up day per date, in input order."""

        if not dates:
            raise InvalidDate(None, "at least one date is required")

        requested = [coerce_date(value) for value in dates]
        already_frozen = phase.frozen_dates()
        make_up_days = {entry.appended_date for entry in phase.freeze_entries}
        seen: set[date] = set()
        for day in requested:
            if not phase.contains(day):
                raise InvalidDate(
                    day,
                    f"outside the plan range ({phase.start_date.isoformat()} to "
                    f"{phase.end_date.isoformat()})",
                )
            if day < today:
                raise InvalidDate(day, "cannot freeze a past date")
            if day in already_frozen or day in seen:
                raise InvalidDate(day, "already frozen")
            if day in make_up_days:
                raise InvalidDate(day, "is a make-up day for an earlier freeze")
            seen.add(day)

        chain = list(chain)
        allowed = self.allowed_freeze_days(phase, purchase)
        remaining = max(0, allowed - self.total_freeze_count(phase, chain))
        if len(requested) > remaining:
            raise QuotaExceeded(len(requested), remaining, allowed)

        created_at = now or datetime.now()
        entries = [
            FreezeEntry(
                frozen_date=day,
                appended_date=add_days(phase.end_date, offset),
                created_at=created_at,
            )
            for offset, day in enumerate(requested, start=1)
        ]
        for entry in entries:
            self._relocate_content(phase, entry)

        phase.freeze_entries.extend(entries)
        phase.end_date = add_days(phase.end_date, len(entries))
        domain_logging.info(
            f"Phase {phase.phase_id}: froze {len(entries)} day(s), end date now "
            f"{phase.end_date.isoformat()}"
        )
        return entries

    def unfreeze(self, phase: Phase, dates: Sequence[Any]) -> List[FreezeEntry]:
        """Remove the freeze entries for ``dates`` and pull the end date back."""

        if not dates:
            raise InvalidDate(None, "at least one date is required")

        removed: List[FreezeEntry] = []
        for value in dates:
            day = coerce_date(value)
            entry = phase.freeze_entry_for(day)
            if entry is None or entry in removed:
                raise NotFrozen(day)
            removed.append(entry)

        removed_slots = sorted(entry.appended_date for entry in removed)
        phase.freeze_entries = [entry for entry in phase.freeze_entries if entry not in removed]
        for entry in removed:
            self._restore_content(phase, entry)

        # Later make-up days slide back over the slots that were released.
        for entry in sorted(phase.freeze_entries, key=lambda e: e.appended_date):
            gap = sum(1 for slot in removed_slots if slot < entry.appended_date)
            if gap:
                target = add_days(entry.appended_date, -gap)
                if entry.appended_date in phase.meals:
                    phase.meals[target] = phase.meals.pop(entry.appended_date)
                entry.appended_date = target

        phase.end_date = add_days(phase.end_date, -len(removed))
        domain_logging.info(
            f"Phase {phase.phase_id}: unfroze {len(removed)} day(s), end date now "
            f"{phase.end_date.isoformat()}"
        )
        return removed

    # ------------------------------------------------------------------
    # Day content
    # ------------------------------------------------------------------
    @staticmethod
    def _relocate_content(phase: Phase, entry: FreezeEntry) -> None:
        content = phase.meals.get(entry.frozen_date)
        if content is None:
            return
        phase.meals[entry.appended_date] = {
            **content,
            RECOVERY_FLAG: True,
            ORIGINAL_DATE_KEY: entry.frozen_date.isoformat(),
        }
        phase.meals[entry.frozen_date] = {**content, FROZEN_FLAG: True}

    @staticmethod
    def _restore_content(phase: Phase, entry: FreezeEntry) -> None:
        phase.meals.pop(entry.appended_date, None)
        content = phase.meals.get(entry.frozen_date)
        if content is not None and FROZEN_FLAG in content:
            restored = dict(content)
            restored.pop(FROZEN_FLAG)
            phase.meals[entry.frozen_date] = restored
