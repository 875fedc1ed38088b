from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ContextManager, List, Optional

from dtps_planner.domain.entities import Phase, Purchase


class PlanningRepository(ABC):
    """Abstract interface for purchase and phase persistence."""

    @abstractmethod
    def get_purchase(self, purchase_id: str) -> Optional[Purchase]:
        """Return the purchase with ``purchase_id`` or ``None``."""

    @abstractmethod
    def get_active_purchase(self, client_id: str) -> Optional[Purchase]:
        """Return the client's most recent active purchase, if any."""

    @abstractmethod
    def save_purchase(self, purchase: Purchase) -> None:
        """Insert or update a purchase."""

    @abstractmethod
    def get_phase(self, phase_id: str) -> Optional[Phase]:
        """Return the phase with ``phase_id`` or ``None``."""

    @abstractmethod
    def list_client_phases(self, client_id: str) -> List[Phase]:
        """Return every phase of a client, cancelled ones included."""

    @abstractmethod
    def save_phase(self, phase: Phase) -> None:
        """Insert or update a phase together with its freeze entries and day content."""

    @abstractmethod
    def delete_phase(self, phase_id: str) -> None:
        """Remove a phase and everything attached to it."""

    @abstractmethod
    def transaction(self) -> ContextManager[None]:
        """Context manager grouping every call made inside it into one atomic unit."""
