"""Phase lifecycle: creation, pause/resume, extend with cascade, freeze/unfreeze.

Every operation returns a :class:`CommandResult` listing the phases it touched
and the events a caller should dispatch. Operations validate completely
before mutating anything, so a raised error leaves every phase untouched.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from dtps_planner.domain import logging as domain_logging
from dtps_planner.domain.allowance import AllowanceTracker
from dtps_planner.domain.configuration import get_settings
from dtps_planner.domain.date_math import add_days, inclusive_day_count
from dtps_planner.domain.entities import (
    Phase,
    PhaseStatus,
    Purchase,
    new_phase_id,
    order_chain,
    schedulable,
)
from dtps_planner.domain.errors import InvalidRange, InvalidTransition
from dtps_planner.domain.events import CommandResult, PhaseEvent, PhaseEventType
from dtps_planner.domain.freeze_ledger import (
    FROZEN_FLAG,
    ORIGINAL_DATE_KEY,
    RECOVERY_FLAG,
    FreezeLedger,
)
from dtps_planner.domain.overlap import OverlapValidator


class PhaseScheduler:
    """Orchestrates phase mutations while keeping the chain consistent."""

    def __init__(
        self,
        *,
        allowance: AllowanceTracker | None = None,
        overlap: OverlapValidator | None = None,
        freeze_ledger: FreezeLedger | None = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.allowance = allowance or AllowanceTracker()
        self.overlap = overlap or OverlapValidator()
        self.freeze_ledger = freeze_ledger or FreezeLedger()
        self._clock = clock

    def today(self, today: Optional[date] = None) -> date:
        return today if today is not None else self._clock()

    def default_start(self, purchase: Purchase, chain: Iterable[Phase], *, today: Optional[date] = None) -> date:
        """Next free day after ``chain``, never before the purchase's expected start."""

        start = self.overlap.suggest_next_start(chain, default=self.today(today))
        if purchase.expected_start_date is not None and start < purchase.expected_start_date:
            return purchase.expected_start_date
        return start

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create_phase(
        self,
        purchase: Purchase,
        start_date: date,
        duration_days: int,
        chain: Iterable[Phase] = (),
        *,
        name: str | None = None,
        meals: Mapping[date, Dict[str, Any]] | None = None,
        share_freeze: bool | None = None,
    ) -> CommandResult:
        if duration_days < 1:
            raise InvalidRange(start_date, start_date, reason="Duration must be at least 1 day")

        self.allowance.ensure_affordable(purchase, duration_days)
        end_date = add_days(start_date, duration_days - 1)
        self.overlap.validate_start_within_window(
            start_date, purchase.expected_start_date, purchase.expected_end_date
        )
        self.overlap.ensure_no_overlap(start_date, end_date, chain)

        self.allowance.commit(purchase, duration_days)
        if share_freeze is None:
            share_freeze = get_settings().share_freeze_across_phases

        phase = Phase(
            phase_id=new_phase_id(),
            purchase_id=purchase.purchase_id,
            client_id=purchase.client_id,
            start_date=start_date,
            end_date=end_date,
            original_duration_days=duration_days,
            status=PhaseStatus.ACTIVE,
            parent_purchase_id=purchase.purchase_id if share_freeze else None,
            name=name,
            meals=dict(meals or {}),
        )
        domain_logging.info(
            f"Created phase {phase.phase_id} for client {phase.client_id}: "
            f"{start_date.isoformat()} to {end_date.isoformat()} ({duration_days} days)"
        )
        return CommandResult(
            phases=(phase,),
            events=(PhaseEvent(PhaseEventType.CREATED, phase.phase_id),),
            purchase=purchase,
        )

    def duplicate(
        self,
        source: Phase,
        purchase: Purchase,
        chain: Iterable[Phase] = (),
        *,
        start_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> CommandResult:
        """Create a new phase seeded with ``source``'s day content."""

        chain = list(chain)
        if start_date is None:
            start_date = self.default_start(purchase, chain, today=today)
        offset = (start_date - source.start_date).days
        meals: Dict[date, Dict[str, Any]] = {}
        for day, content in source.meals.items():
            if content.get(RECOVERY_FLAG):
                continue
            cleaned = {
                key: value
                for key, value in content.items()
                if key not in (FROZEN_FLAG, RECOVERY_FLAG, ORIGINAL_DATE_KEY)
            }
            meals[add_days(day, offset)] = cleaned

        return self.create_phase(
            purchase,
            start_date,
            source.original_duration_days,
            chain,
            name=source.name,
            meals=meals,
            share_freeze=source.shares_freeze_ledger,
        )

    # ------------------------------------------------------------------
    # Pause / resume
    # ------------------------------------------------------------------
    def pause(
        self,
        phase: Phase,
        pause_days: int,
        *,
        chain: Iterable[Phase] = (),
        today: Optional[date] = None,
    ) -> CommandResult:
        """Put a phase on hold.

        A running phase (start on or before today) gets ``pause_days`` added to
        its end date and the phases after it in ``chain`` are pushed back. A
        phase that has not started yet only changes status.
        """

        if pause_days < 1:
            raise InvalidRange(
                phase.start_date, phase.end_date, reason="Pause duration must be at least 1 day"
            )
        if phase.status != PhaseStatus.ACTIVE:
            raise InvalidTransition(phase.phase_id, phase.status.value, "pause")

        old_end = phase.end_date
        extended = phase.start_date <= self.today(today)
        if extended:
            phase.end_date = add_days(phase.end_date, pause_days)
            phase.total_pause_days += pause_days
        phase.status = PhaseStatus.PAUSED
        phase.check_span()
        moved = self._carry_followers(phase, old_end, chain)

        domain_logging.info(
            f"Paused phase {phase.phase_id}"
            + (f" for {pause_days} day(s), end date now {phase.end_date.isoformat()}" if extended else "")
        )
        return self._with_followers(
            phase,
            PhaseEventType.PAUSED,
            moved,
            details={"end_date_extended": extended, "pause_days": pause_days},
        )

    def resume(self, phase: Phase) -> CommandResult:
        if phase.status != PhaseStatus.PAUSED:
            raise InvalidTransition(phase.phase_id, phase.status.value, "resume")
        phase.status = PhaseStatus.ACTIVE
        domain_logging.info(f"Resumed phase {phase.phase_id}")
        return CommandResult(
            phases=(phase,),
            events=(PhaseEvent(PhaseEventType.RESUMED, phase.phase_id),),
        )

    # ------------------------------------------------------------------
    # Extend with cascade
    # ------------------------------------------------------------------
    def plan_extension(
        self, phase: Phase, new_start_date: date, chain: Iterable[Phase]
    ) -> List[Tuple[Phase, date, date]]:
        """Compute the new window of every phase in the chain without mutating any.

        The edited phase keeps its length and slides to ``new_start_date``.
        Earlier phases are packed backwards so each ends the day before its
        successor starts; later phases are packed forwards the same way.
        """

        if phase.status == PhaseStatus.CANCELLED:
            raise InvalidTransition(phase.phase_id, phase.status.value, "extend")

        ordered = [p for p in order_chain(schedulable(chain)) if p.phase_id != phase.phase_id]
        ordered.append(phase)
        ordered = order_chain(ordered)
        index = next(i for i, p in enumerate(ordered) if p is phase)

        windows: Dict[str, Tuple[date, date]] = {}
        new_end_date = add_days(new_start_date, phase.span_days - 1)
        windows[phase.phase_id] = (new_start_date, new_end_date)

        next_start = new_start_date
        for i in range(index - 1, -1, -1):
            earlier = ordered[i]
            end = add_days(next_start, -1)
            start = add_days(end, -(earlier.span_days - 1))
            windows[earlier.phase_id] = (start, end)
            next_start = start

        previous_end = new_end_date
        for i in range(index + 1, len(ordered)):
            later = ordered[i]
            start = add_days(previous_end, 1)
            end = add_days(start, later.span_days - 1)
            windows[later.phase_id] = (start, end)
            previous_end = end

        plan: List[Tuple[Phase, date, date]] = []
        for p in ordered:
            start, end = windows[p.phase_id]
            inclusive_day_count(start, end)
            plan.append((p, start, end))
        return plan

    def extend(self, phase: Phase, new_start_date: date, chain: Iterable[Phase]) -> CommandResult:
        """Move ``phase`` to ``new_start_date`` and re-date the rest of the chain.

        Running this twice with the same target is a no-op the second time.
        """

        plan = self.plan_extension(phase, new_start_date, chain)

        changed: List[Phase] = []
        for p, start, _end in plan:
            delta = (start - p.start_date).days
            if delta:
                p.shift(delta)
                changed.append(p)
            p.check_span()

        touched = [phase] + [p for p in changed if p is not phase]
        domain_logging.info(
            f"Extended phase {phase.phase_id} to {phase.start_date.isoformat()} - "
            f"{phase.end_date.isoformat()}; re-dated {len(touched) - 1} other phase(s)"
        )
        return CommandResult(
            phases=tuple(touched),
            events=tuple(PhaseEvent(PhaseEventType.EXTENDED, p.phase_id) for p in touched),
        )

    # ------------------------------------------------------------------
    # Freeze / unfreeze
    # ------------------------------------------------------------------
    def freeze(
        self,
        phase: Phase,
        dates: Sequence[Any],
        *,
        chain: Iterable[Phase] = (),
        purchase: Optional[Purchase] = None,
        today: Optional[date] = None,
    ) -> CommandResult:
        """Freeze ``dates``; phases after this one in ``chain`` are pushed back to make room."""

        if phase.status == PhaseStatus.CANCELLED:
            raise InvalidTransition(phase.phase_id, phase.status.value, "freeze")
        chain = list(chain)
        old_end = phase.end_date
        entries = self.freeze_ledger.freeze(
            phase, dates, today=self.today(today), chain=chain, purchase=purchase
        )
        phase.check_span()
        moved = self._carry_followers(phase, old_end, chain)
        return self._with_followers(phase, PhaseEventType.FROZEN, moved, details={"entries": entries})

    def unfreeze(self, phase: Phase, dates: Sequence[Any], chain: Iterable[Phase] = ()) -> CommandResult:
        """Release frozen ``dates``; phases that followed on directly are pulled forward."""

        old_end = phase.end_date
        removed = self.freeze_ledger.unfreeze(phase, dates)
        phase.check_span()
        moved = self._carry_followers(phase, old_end, chain)
        return self._with_followers(phase, PhaseEventType.UNFROZEN, moved, details={"entries": removed})

    # ------------------------------------------------------------------
    # Chain upkeep
    # ------------------------------------------------------------------
    def _carry_followers(self, phase: Phase, old_end: date, chain: Iterable[Phase]) -> List[Phase]:
        """Re-date the phases after ``phase`` once its end date moved from ``old_end``.

        A follower that started the day after its predecessor's old end stays
        attached to it. A follower separated by a gap only moves when the new
        end would run into it. The walk stops at the first phase left in place.
        """

        if phase.end_date == old_end:
            return []

        followers = [
            p
            for p in order_chain(schedulable(chain))
            if p.phase_id != phase.phase_id and p.start_date > phase.start_date
        ]
        moved: List[Phase] = []
        previous_old_end, previous_new_end = old_end, phase.end_date
        for follower in followers:
            attached = follower.start_date == add_days(previous_old_end, 1)
            if not attached and follower.start_date > previous_new_end:
                break
            delta = (add_days(previous_new_end, 1) - follower.start_date).days
            previous_old_end = follower.end_date
            if delta:
                follower.shift(delta)
                follower.check_span()
                moved.append(follower)
            previous_new_end = follower.end_date

        if moved:
            domain_logging.info(
                f"Phase {phase.phase_id} now ends {phase.end_date.isoformat()}; "
                f"re-dated {len(moved)} following phase(s)"
            )
        return moved

    @staticmethod
    def _with_followers(
        phase: Phase,
        event_type: PhaseEventType,
        moved: Sequence[Phase],
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> CommandResult:
        return CommandResult(
            phases=(phase, *moved),
            events=(PhaseEvent(event_type, phase.phase_id),)
            + tuple(PhaseEvent(PhaseEventType.EXTENDED, p.phase_id) for p in moved),
            details=details or {},
        )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------
    def delete(self, phase: Phase) -> CommandResult:
        """Drop a phase. Its days are not returned to the purchase."""

        domain_logging.info(f"Deleted phase {phase.phase_id}")
        return CommandResult(
            phases=(phase,),
            events=(PhaseEvent(PhaseEventType.DELETED, phase.phase_id),),
        )
