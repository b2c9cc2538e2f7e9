# Overview: Period and live availability checks for equipment.

"""
Availability Checker

Period availability (authoritative for date-ranged bookings):

    capacity_for_period  = total - maintenance - damaged
    reserved_in_period   = sum(quantity) of BookingItems on PENDING/CONFIRMED
                           bookings overlapping [start, end]
                           + 1 per overlapping item-less legacy booking
    available_for_period = capacity_for_period - reserved_in_period

Live availability only looks at available_stock, i.e. what is free right now,
ignoring future reservations.

Overlap is always the closed-interval predicate of time_utils.intervals_overlap;
the SQL filters below are that same predicate written as column comparisons.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError
from ..models import Booking, BookingItem, Equipment
from rentals.time_utils import intervals_overlap, to_iso_date


ACTIVE_STATUSES = ("PENDING", "CONFIRMED")


@dataclass
class AvailabilityResult:
    equipment_id: int
    requested: int
    available: bool
    capacity_for_period: int
    reserved_in_period: int
    available_for_period: int
    message: str
    conflicts: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "equipment_id": self.equipment_id,
            "requested": self.requested,
            "available": self.available,
            "capacity_for_period": self.capacity_for_period,
            "reserved_in_period": self.reserved_in_period,
            "available_for_period": self.available_for_period,
            "message": self.message,
            "conflicts": self.conflicts,
        }


def _overlapping(query, start_date: date, end_date: date):
    # intervals_overlap(Booking.start, Booking.end, start, end)
    return query.filter(Booking.start_date <= end_date, start_date <= Booking.end_date)


def _active_bookings_query(equipment: Equipment, exclude_booking_id: int | None):
    query = db.session.query(Booking).filter(
        Booking.org_id == equipment.org_id,
        Booking.status.in_(ACTIVE_STATUSES),
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query


def reserved_in_period(
    equipment: Equipment,
    start_date: date,
    end_date: date,
    *,
    exclude_booking_id: int | None = None,
) -> int:
    """
    Units of `equipment` still held by active bookings overlapping the range.

    Items count their pending quantity. Returned units are back in available
    stock and damaged units are already out of capacity through damaged_stock.
    """
    pending = BookingItem.quantity - BookingItem.returned_qty - BookingItem.damaged_qty
    item_query = (
        db.session.query(func.coalesce(func.sum(pending), 0))
        .join(Booking, BookingItem.booking_id == Booking.id)
        .filter(
            BookingItem.equipment_id == equipment.id,
            Booking.org_id == equipment.org_id,
            Booking.status.in_(ACTIVE_STATUSES),
        )
    )
    if exclude_booking_id is not None:
        item_query = item_query.filter(Booking.id != exclude_booking_id)
    item_qty = _overlapping(item_query, start_date, end_date).scalar() or 0

    legacy_query = _active_bookings_query(equipment, exclude_booking_id).filter(
        Booking.equipment_id == equipment.id,
        ~Booking.items.any(),
    )
    legacy_qty = _overlapping(legacy_query, start_date, end_date).count()

    return int(item_qty) + legacy_qty


def conflicting_bookings(
    equipment: Equipment,
    start_date: date,
    end_date: date,
    *,
    exclude_booking_id: int | None = None,
) -> list[dict]:
    """Active bookings holding units of `equipment` during the range."""
    bookings = _overlapping(
        _active_bookings_query(equipment, exclude_booking_id), start_date, end_date
    ).order_by(Booking.start_date, Booking.id).all()

    conflicts = []
    for booking in bookings:
        if booking.items:
            qty = sum(i.pending_qty for i in booking.items if i.equipment_id == equipment.id)
        else:
            qty = 1 if booking.equipment_id == equipment.id else 0
        if qty and intervals_overlap(booking.start_date, booking.end_date, start_date, end_date):
            conflicts.append({
                "booking_id": booking.id,
                "booking_number": booking.booking_number,
                "status": booking.status,
                "start_date": to_iso_date(booking.start_date),
                "end_date": to_iso_date(booking.end_date),
                "quantity": qty,
            })
    return conflicts


def check_period_availability(
    equipment: Equipment,
    start_date: date,
    end_date: date,
    quantity: int,
    *,
    exclude_booking_id: int | None = None,
    include_conflicts: bool = False,
) -> AvailabilityResult:
    capacity = equipment.total_stock - equipment.maintenance_stock - equipment.damaged_stock
    reserved = reserved_in_period(
        equipment, start_date, end_date, exclude_booking_id=exclude_booking_id
    )
    free = capacity - reserved

    if equipment.status != "ACTIVE":
        ok = False
        message = f"Equipment {equipment.name!r} is not active"
    elif free >= quantity:
        ok = True
        message = f"{free} unit(s) available for the period (requested {quantity})"
    else:
        ok = False
        message = (
            f"Insufficient stock of {equipment.name!r} for the period: "
            f"available {max(free, 0)}, requested {quantity}"
        )

    conflicts = []
    if include_conflicts:
        conflicts = conflicting_bookings(
            equipment, start_date, end_date, exclude_booking_id=exclude_booking_id
        )

    return AvailabilityResult(
        equipment_id=equipment.id,
        requested=quantity,
        available=ok,
        capacity_for_period=capacity,
        reserved_in_period=reserved,
        available_for_period=free,
        message=message,
        conflicts=conflicts,
    )


def check_live_availability(equipment: Equipment, quantity: int) -> bool:
    """Current-moment check on the available_stock counter."""
    return equipment.available_stock >= quantity


def check_availability(
    org_id: int,
    equipment_id: int,
    start_date: date,
    end_date: date,
    quantity: int,
    *,
    exclude_booking_id: int | None = None,
) -> AvailabilityResult:
    """Read-only lookup used by the availability endpoint."""
    equipment = db.session.query(Equipment).filter(
        Equipment.id == equipment_id,
        Equipment.org_id == org_id,
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    return check_period_availability(
        equipment,
        start_date,
        end_date,
        quantity,
        exclude_booking_id=exclude_booking_id,
        include_conflicts=True,
    )
