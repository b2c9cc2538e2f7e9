# Overview: Subscription plan quota checks.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Booking, Organization
from rentals.time_utils import utcnow, month_bounds


@dataclass(frozen=True)
class LimitCheckResult:
    allowed: bool
    current: int
    max: int
    message: str | None = None
    is_unlimited: bool = False

    @property
    def percentage(self) -> int:
        if self.is_unlimited:
            return 0
        if self.max <= 0:
            return 100
        return min(100, round(self.current * 100 / self.max))

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "current": self.current,
            "max": self.max,
            "message": self.message,
            "is_unlimited": self.is_unlimited,
            "percentage": self.percentage,
        }


def count_bookings_this_month(org_id: int) -> int:
    start, end = month_bounds(utcnow())
    return db.session.query(Booking).filter(
        Booking.org_id == org_id,
        Booking.created_at >= start,
        Booking.created_at < end,
    ).count()


def check_booking_limit(org_id: int) -> LimitCheckResult:
    """
    Whether the tenant's plan allows one more booking this calendar month.

    Organizations without an active plan may not book. max_bookings_per_month
    of -1 means unlimited.
    """
    org = db.session.get(Organization, org_id)
    plan = org.plan if org else None
    if not plan or not plan.is_active:
        return LimitCheckResult(
            allowed=False,
            current=0,
            max=0,
            message="No active plan found",
        )

    current = count_bookings_this_month(org_id)

    if plan.max_bookings_per_month == -1:
        return LimitCheckResult(allowed=True, current=current, max=-1, is_unlimited=True)

    if current >= plan.max_bookings_per_month:
        return LimitCheckResult(
            allowed=False,
            current=current,
            max=plan.max_bookings_per_month,
            message=(
                f"Monthly booking limit reached ({current}/{plan.max_bookings_per_month}) "
                f"for plan {plan.name}"
            ),
        )

    return LimitCheckResult(allowed=True, current=current, max=plan.max_bookings_per_month)
