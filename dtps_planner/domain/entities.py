"""Domain entities for purchased plan-day allowances and meal-plan phases."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from dtps_planner.domain.date_math import add_days, inclusive_day_count
from dtps_planner.domain.errors import InvalidRange


class PhaseStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PurchaseStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def new_phase_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Purchase:
    """A client's paid allowance of plan-days."""

    purchase_id: str
    client_id: str
    total_purchased_days: int
    days_used: int = 0
    expected_start_date: Optional[date] = None
    expected_end_date: Optional[date] = None
    status: PurchaseStatus = PurchaseStatus.ACTIVE
    # Explicit freeze cap from the pricing tier; ``None`` falls back to the policy.
    allowed_freeze_days: Optional[int] = None

    @property
    def remaining_days(self) -> int:
        return max(0, self.total_purchased_days - self.days_used)

    @property
    def is_active(self) -> bool:
        return self.status == PurchaseStatus.ACTIVE


@dataclass
class FreezeEntry:
    """A frozen day and the make-up date its content was moved to."""

    frozen_date: date
    appended_date: date
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Phase:
    """One contiguous meal-plan instance drawn from a purchase.

    ``original_duration_days`` is fixed at creation. The visible span grows by
    one day per freeze entry and by any pause days granted while running, so
    ``span_days == original_duration_days + total_freeze_count + total_pause_days``.
    """

    phase_id: str
    purchase_id: str
    client_id: str
    start_date: date
    end_date: date
    original_duration_days: int
    status: PhaseStatus = PhaseStatus.ACTIVE
    freeze_entries: List[FreezeEntry] = field(default_factory=list)
    total_pause_days: int = 0
    parent_purchase_id: Optional[str] = None
    name: Optional[str] = None
    meals: Dict[date, Dict[str, Any]] = field(default_factory=dict)

    @property
    def total_freeze_count(self) -> int:
        return len(self.freeze_entries)

    @property
    def span_days(self) -> int:
        return inclusive_day_count(self.start_date, self.end_date)

    @property
    def expected_span_days(self) -> int:
        return self.original_duration_days + self.total_freeze_count + self.total_pause_days

    @property
    def shares_freeze_ledger(self) -> bool:
        return self.parent_purchase_id is not None

    def frozen_dates(self) -> set[date]:
        return {entry.frozen_date for entry in self.freeze_entries}

    def freeze_entry_for(self, day: date) -> Optional[FreezeEntry]:
        for entry in self.freeze_entries:
            if entry.frozen_date == day:
                return entry
        return None

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def shift(self, days: int) -> None:
        """Slide the whole window, its freeze entries and day content by ``days``."""

        if days == 0:
            return
        self.start_date = add_days(self.start_date, days)
        self.end_date = add_days(self.end_date, days)
        for entry in self.freeze_entries:
            entry.frozen_date = add_days(entry.frozen_date, days)
            entry.appended_date = add_days(entry.appended_date, days)
        self.meals = {add_days(day, days): content for day, content in self.meals.items()}

    def check_span(self) -> None:
        """Raise :class:`InvalidRange` when the dates drift from the tracked duration."""

        if self.end_date < self.start_date:
            raise InvalidRange(self.start_date, self.end_date)
        if self.span_days != self.expected_span_days:
            raise InvalidRange(
                self.start_date,
                self.end_date,
                reason=(
                    f"Phase {self.phase_id} spans {self.span_days} days but tracks "
                    f"{self.expected_span_days}"
                ),
            )


def order_chain(phases: Iterable[Phase]) -> List[Phase]:
    """Order phases by start date (ties broken by end date, then id)."""

    return sorted(phases, key=lambda p: (p.start_date, p.end_date, p.phase_id))


def schedulable(phases: Iterable[Phase]) -> List[Phase]:
    """Phases that take part in placement and cascades (everything not cancelled)."""

    return [phase for phase in phases if phase.status != PhaseStatus.CANCELLED]
