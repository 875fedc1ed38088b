"""Read-side view over a client's chain of phases."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from dtps_planner.domain.entities import Phase, PhaseStatus, order_chain, schedulable


class ChainLabel(str, Enum):
    RUNNING = "running"
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    NONE = "none"


@dataclass(frozen=True)
class ChainView:
    label: ChainLabel
    phase: Optional[Phase] = None


def effective_status(phase: Phase, today: date) -> PhaseStatus:
    """Stored status, except that a finished phase reads as completed."""

    if phase.status == PhaseStatus.CANCELLED:
        return phase.status
    if phase.end_date < today:
        return PhaseStatus.COMPLETED
    return phase.status


class PlanChainView:
    """Pure queries answering "what is this client on right now?"."""

    def current_view(self, chain: Iterable[Phase], today: date) -> ChainView:
        phases = order_chain(schedulable(chain))
        if not phases:
            return ChainView(ChainLabel.NONE)

        for phase in phases:
            if phase.status == PhaseStatus.ACTIVE and phase.contains(today):
                return ChainView(ChainLabel.RUNNING, phase)

        for phase in phases:
            if phase.start_date > today:
                return ChainView(ChainLabel.UPCOMING, phase)

        last = max(phases, key=lambda p: (p.end_date, p.start_date, p.phase_id))
        return ChainView(ChainLabel.COMPLETED, last)

    def timeline(self, chain: Iterable[Phase], today: date) -> List[Tuple[Phase, PhaseStatus]]:
        """Every phase in chain order paired with its effective status."""

        return [(phase, effective_status(phase, today)) for phase in order_chain(chain)]
