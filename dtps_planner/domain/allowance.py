"""Bookkeeping of a purchase's plan-day allowance."""

from __future__ import annotations

from dataclasses import dataclass

from dtps_planner.domain import logging as domain_logging
from dtps_planner.domain.entities import Purchase
from dtps_planner.domain.errors import AllowanceExceeded, InvalidRange


@dataclass(frozen=True)
class AllowanceCheck:
    """Answer to "can this client get another N-day phase?"."""

    can_create: bool
    total_purchased_days: int
    days_used: int
    remaining_days: int
    message: str


class AllowanceTracker:
    """Tracks purchased, consumed and remaining plan-days.

    There is no decrement: days committed to a phase stay
    consumed even if that phase is later deleted.
    """

    def remaining_days(self, purchase: Purchase) -> int:
        return max(0, purchase.total_purchased_days - purchase.days_used)

    def can_afford(self, purchase: Purchase, requested_days: int) -> bool:
        return purchase.is_active and self.remaining_days(purchase) >= requested_days

    def check(self, purchase: Purchase, requested_days: int) -> AllowanceCheck:
        remaining = self.remaining_days(purchase)
        if not purchase.is_active:
            message = "Purchase is not active"
        elif remaining < requested_days:
            message = f"Only {remaining} days remaining in plan"
        else:
            message = "OK"
        return AllowanceCheck(
            can_create=self.can_afford(purchase, requested_days),
            total_purchased_days=purchase.total_purchased_days,
            days_used=purchase.days_used,
            remaining_days=remaining,
            message=message,
        )

    def ensure_affordable(self, purchase: Purchase, requested_days: int) -> None:
        if self.can_afford(purchase, requested_days):
            return
        check = self.check(purchase, requested_days)
        raise AllowanceExceeded(requested_days, check.remaining_days, reason=check.message)

    def commit(self, purchase: Purchase, days: int) -> Purchase:
        """Consume ``days`` from the allowance, mutating ``purchase.days_used``."""

        if days < 1:
            raise InvalidRange(None, None, reason=f"Cannot commit {days} plan-days; at least 1 is required")
        remaining = self.remaining_days(purchase)
        if days > remaining:
            raise AllowanceExceeded(days, remaining)
        purchase.days_used += days
        domain_logging.debug(
            f"Purchase {purchase.purchase_id}: committed {days} days "
            f"({purchase.days_used}/{purchase.total_purchased_days} used)"
        )
        return purchase
