"""Outbound events returned by scheduling commands.

Commands never publish anything themselves; they return the events and the
caller decides how to deliver them (HTTP response, queue, UI refresh).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from dtps_planner.domain.entities import Phase, Purchase


class PhaseEventType(str, Enum):
    CREATED = "phase-created"
    EXTENDED = "phase-extended"
    PAUSED = "phase-paused"
    RESUMED = "phase-resumed"
    FROZEN = "phase-frozen"
    UNFROZEN = "phase-unfrozen"
    DELETED = "phase-deleted"


@dataclass(frozen=True)
class PhaseEvent:
    type: PhaseEventType
    phase_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "phase_id": self.phase_id}


@dataclass(frozen=True)
class CommandResult:
    """Phases touched by a command, in the order they changed, plus its events."""

    phases: Tuple[Phase, ...] = ()
    events: Tuple[PhaseEvent, ...] = ()
    purchase: Optional[Purchase] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def phase(self) -> Optional[Phase]:
        return self.phases[0] if self.phases else None
