# dtps_planner/application/services.py
"""
High-level services that orchestrate the scheduling domain and persistence.

Every command loads what it needs from the repository, lets the domain decide,
then writes the touched records back inside a single repository transaction.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from dtps_planner.application.exceptions import (
    ApplicationError,
    CascadeError,
    DataAccessError,
    NotFoundError,
)
from dtps_planner.domain.chain_view import ChainView, PlanChainView
from dtps_planner.domain.entities import Phase, Purchase, order_chain
from dtps_planner.domain.errors import SchedulingError
from dtps_planner.domain.events import CommandResult
from dtps_planner.domain.freeze_ledger import FreezeSummary
from dtps_planner.domain.repositories import PlanningRepository
from dtps_planner.domain.scheduler import PhaseScheduler
from dtps_planner.infrastructure import log_utils


class PlanningService:
    """Command and query handlers for meal-plan phases."""

    def __init__(
        self,
        repository: PlanningRepository,
        scheduler: PhaseScheduler | None = None,
        chain_view: PlanChainView | None = None,
        clock: Callable[[], date] | None = None,
    ):
        self.repository = repository
        self.clock = clock or date.today
        self.scheduler = scheduler or PhaseScheduler(clock=self.clock)
        self.chain_view = chain_view or PlanChainView()

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------
    def _load_purchase(self, purchase_id: str) -> Purchase:
        purchase = self._read(lambda: self.repository.get_purchase(purchase_id), f"load purchase {purchase_id}")
        if purchase is None:
            raise NotFoundError(f"Purchase {purchase_id} not found")
        return purchase

    def _load_phase(self, phase_id: str) -> Phase:
        phase = self._read(lambda: self.repository.get_phase(phase_id), f"load phase {phase_id}")
        if phase is None:
            raise NotFoundError(f"Phase {phase_id} not found")
        return phase

    def _load_chain(self, client_id: str) -> List[Phase]:
        return self._read(
            lambda: self.repository.list_client_phases(client_id),
            f"load phases for client {client_id}",
        )

    @staticmethod
    def _read(call: Callable[[], Any], action: str) -> Any:
        try:
            return call()
        except ApplicationError:
            raise
        except Exception as exc:
            message = f"Failed to {action}: {exc}"
            log_utils.error(message)
            raise DataAccessError(message) from exc

    @contextmanager
    def _unit_of_work(self, action: str, error_cls: type[DataAccessError] = DataAccessError) -> Iterator[None]:
        try:
            with self.repository.transaction():
                yield
        except (ApplicationError, SchedulingError):
            raise
        except Exception as exc:
            message = f"Failed to {action}: {exc}"
            log_utils.error(message)
            raise error_cls(message) from exc

    def _save_phases(self, phases: Sequence[Phase]) -> None:
        for phase in phases:
            self.repository.save_phase(phase)

    @staticmethod
    def _log_events(result: CommandResult) -> None:
        for event in result.events:
            log_utils.debug(f"Emitting {event.type.value} for phase {event.phase_id}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def create_phase(
        self,
        purchase_id: str,
        start_date: Optional[date],
        duration_days: int,
        *,
        name: str | None = None,
        meals: Mapping[date, Dict[str, Any]] | None = None,
    ) -> CommandResult:
        """Create a phase for ``purchase_id``; ``start_date=None`` picks the next free day."""

        log_utils.info(f"Creating {duration_days}-day phase for purchase {purchase_id}...")
        with self._unit_of_work(f"create phase for purchase {purchase_id}"):
            purchase = self._load_purchase(purchase_id)
            chain = self._load_chain(purchase.client_id)
            if start_date is None:
                start_date = self.scheduler.default_start(purchase, chain, today=self.clock())
            result = self.scheduler.create_phase(
                purchase, start_date, duration_days, chain, name=name, meals=meals
            )
            self.repository.save_purchase(purchase)
            self._save_phases(result.phases)

        self._log_events(result)
        log_utils.info(f"Successfully created phase {result.phase.phase_id}")
        return result

    def duplicate_phase(self, phase_id: str, start_date: Optional[date] = None) -> CommandResult:
        log_utils.info(f"Duplicating phase {phase_id}...")
        with self._unit_of_work(f"duplicate phase {phase_id}"):
            source = self._load_phase(phase_id)
            purchase = self._load_purchase(source.purchase_id)
            chain = self._load_chain(source.client_id)
            result = self.scheduler.duplicate(
                source, purchase, chain, start_date=start_date, today=self.clock()
            )
            self.repository.save_purchase(purchase)
            self._save_phases(result.phases)

        self._log_events(result)
        return result

    def pause_phase(self, phase_id: str, pause_days: int) -> CommandResult:
        with self._unit_of_work(f"pause phase {phase_id}"):
            phase = self._load_phase(phase_id)
            chain = self._load_chain(phase.client_id)
            result = self.scheduler.pause(phase, pause_days, chain=chain, today=self.clock())
            self._save_phases(result.phases)

        self._log_events(result)
        return result

    def resume_phase(self, phase_id: str) -> CommandResult:
        with self._unit_of_work(f"resume phase {phase_id}"):
            phase = self._load_phase(phase_id)
            result = self.scheduler.resume(phase)
            self._save_phases(result.phases)

        self._log_events(result)
        return result

    def extend_phase(self, phase_id: str, new_start_date: date) -> CommandResult:
        """Move a phase and cascade the client's chain in one transaction.

        A persistence failure part way through the cascade rolls back every
        write and surfaces as :class:`CascadeError`.
        """

        log_utils.info(f"Extending phase {phase_id} to start {new_start_date.isoformat()}...")
        with self._unit_of_work(f"extend phase {phase_id}", CascadeError):
            phase = self._load_phase(phase_id)
            chain = self._load_chain(phase.client_id)
            result = self.scheduler.extend(phase, new_start_date, chain)
            self._save_phases(result.phases)

        self._log_events(result)
        log_utils.info(f"Extend of phase {phase_id} re-dated {len(result.phases)} phase(s)")
        return result

    def freeze_dates(self, phase_id: str, dates: Sequence[Any]) -> CommandResult:
        with self._unit_of_work(f"freeze dates on phase {phase_id}"):
            phase = self._load_phase(phase_id)
            chain = self._load_chain(phase.client_id)
            purchase = self._read(
                lambda: self.repository.get_purchase(phase.purchase_id),
                f"load purchase {phase.purchase_id}",
            )
            result = self.scheduler.freeze(
                phase, dates, chain=chain, purchase=purchase, today=self.clock()
            )
            self._save_phases(result.phases)

        self._log_events(result)
        return result

    def unfreeze_dates(self, phase_id: str, dates: Sequence[Any]) -> CommandResult:
        with self._unit_of_work(f"unfreeze dates on phase {phase_id}"):
            phase = self._load_phase(phase_id)
            chain = self._load_chain(phase.client_id)
            result = self.scheduler.unfreeze(phase, dates, chain)
            self._save_phases(result.phases)

        self._log_events(result)
        return result

    def delete_phase(self, phase_id: str) -> CommandResult:
        """Remove a phase. The purchase keeps the days as used."""

        with self._unit_of_work(f"delete phase {phase_id}"):
            phase = self._load_phase(phase_id)
            result = self.scheduler.delete(phase)
            self.repository.delete_phase(phase_id)

        self._log_events(result)
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def freeze_info(self, phase_id: str) -> FreezeSummary:
        phase = self._load_phase(phase_id)
        chain = self._load_chain(phase.client_id)
        purchase = self._read(
            lambda: self.repository.get_purchase(phase.purchase_id),
            f"load purchase {phase.purchase_id}",
        )
        return self.scheduler.freeze_ledger.summary(phase, chain, purchase)

    def allowance_check(self, client_id: str, requested_days: int) -> Dict[str, Any]:
        purchase = self._read(
            lambda: self.repository.get_active_purchase(client_id),
            f"load active purchase for client {client_id}",
        )
        if purchase is None:
            return {
                "has_paid_plan": False,
                "can_create": False,
                "total_purchased_days": 0,
                "days_used": 0,
                "remaining_days": 0,
                "message": "No active purchase found",
            }

        check = self.scheduler.allowance.check(purchase, requested_days)
        return {
            "has_paid_plan": True,
            "purchase_id": purchase.purchase_id,
            "can_create": check.can_create,
            "total_purchased_days": check.total_purchased_days,
            "days_used": check.days_used,
            "remaining_days": check.remaining_days,
            "message": check.message,
        }

    def client_chain(self, client_id: str) -> List[Phase]:
        return order_chain(self._load_chain(client_id))

    def current_view(self, client_id: str, today: Optional[date] = None) -> ChainView:
        return self.chain_view.current_view(self._load_chain(client_id), today or self.clock())

    def suggest_next_start(self, client_id: str) -> date:
        return self.scheduler.overlap.suggest_next_start(self._load_chain(client_id), default=self.clock())
