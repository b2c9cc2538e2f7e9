# Overview: Service-layer operations for bookings; encapsulates business logic and database work.

"""
Booking Transaction Manager

WHY: A booking reserves stock on several equipment rows at once. Creating,
editing or cancelling it must either apply every counter change, movement
and booking row together, or none of them.

DESIGN PRINCIPLES:
- One transaction per operation (concurrency.atomic), retried on lock and
  optimistic-version conflicts
- Equipment rows are locked before they are checked, so "read stock ->
  validate -> reserve" cannot interleave with another writer on that row
- Cancel, edit and return lock the booking row before reading its status or
  line quantities; Booking/BookingItem version_id turn a stale read into a
  retried StaleDataError, so pending units are released exactly once
- Legacy single-equipment requests are normalized to a one-item list at the
  boundary (normalize_line_items); nothing downstream branches on the shape
- Stock counters only change through stock_ledger_service

LIFECYCLE:
    PENDING -> CONFIRMED -> COMPLETED
    PENDING / CONFIRMED -> CANCELLED
COMPLETED and CANCELLED are terminal: no status change leaves them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import (
    NotFoundError,
    StockConflictError,
    InvalidStateTransitionError,
    PlanLimitExceededError,
)
from ..models import Booking, BookingItem, Customer, Equipment, StockMovement
from . import stock_ledger_service as ledger
from . import availability_service
from . import pricing_service
from . import plan_limit_service
from .activity_service import log_activity
from .concurrency import atomic, lock_for_update
from .document_service import next_document_number
from rentals.time_utils import inclusive_day_count, utcnow, to_iso_date


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

BOOKING_STATUS_PENDING = "PENDING"
BOOKING_STATUS_CONFIRMED = "CONFIRMED"
BOOKING_STATUS_COMPLETED = "COMPLETED"
BOOKING_STATUS_CANCELLED = "CANCELLED"

ACTIVE_STATUSES = {BOOKING_STATUS_PENDING, BOOKING_STATUS_CONFIRMED}
TERMINAL_STATUSES = {BOOKING_STATUS_COMPLETED, BOOKING_STATUS_CANCELLED}

BOOKING_DOCUMENT_TYPE = "BOOKING"


@dataclass(frozen=True)
class LineItemRequest:
    equipment_id: int
    quantity: int
    unit_price_cents: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class BookingLine:
    """
    Stock-holding line of a booking.

    item is None for an item-less legacy booking, which holds one unit of
    Booking.equipment_id.
    """
    equipment_id: int
    quantity: int
    item: BookingItem | None = None

    @property
    def pending_qty(self) -> int:
        if self.item is None:
            return self.quantity
        return self.item.pending_qty


def normalize_line_items(
    items: list[dict] | None,
    equipment_id: int | None = None,
) -> list[LineItemRequest]:
    """
    Collapse the two request shapes into one list of line items.

    A request with `items` uses them; otherwise a legacy `equipment_id`
    becomes a single line of quantity 1.
    """
    if items:
        return [
            LineItemRequest(
                equipment_id=item["equipment_id"],
                quantity=item.get("quantity", 1),
                unit_price_cents=item.get("unit_price_cents"),
                notes=item.get("notes"),
            )
            for item in items
        ]
    if equipment_id:
        return [LineItemRequest(equipment_id=equipment_id, quantity=1)]
    return []


def booking_lines(booking: Booking) -> list[BookingLine]:
    if booking.items:
        return [
            BookingLine(equipment_id=item.equipment_id, quantity=item.quantity, item=item)
            for item in booking.items
        ]
    if booking.equipment_id:
        return [BookingLine(equipment_id=booking.equipment_id, quantity=1)]
    return []


def _booking_prefix() -> str:
    return current_app.config.get("BOOKING_NUMBER_PREFIX", "RES")


# =============================================================================
# QUERIES
# =============================================================================

def get_booking(org_id: int, booking_id: int) -> Booking:
    booking = db.session.query(Booking).filter(
        Booking.id == booking_id,
        Booking.org_id == org_id,
    ).first()
    if not booking:
        raise NotFoundError("Booking", booking_id)
    return booking


def get_booking_for_update(org_id: int, booking_id: int) -> Booking:
    """
    Load a booking with a write lock before reading its status.

    Booking.version_id covers databases that ignore SELECT ... FOR UPDATE.
    """
    booking = lock_for_update(
        db.session.query(Booking).filter(
            Booking.id == booking_id,
            Booking.org_id == org_id,
        )
    ).first()
    if not booking:
        raise NotFoundError("Booking", booking_id)
    return booking


def list_bookings(org_id: int, status: str | None = None) -> list[Booking]:
    query = db.session.query(Booking).filter(Booking.org_id == org_id)
    if status:
        query = query.filter(Booking.status == status)
    return query.order_by(Booking.start_date.desc(), Booking.id.desc()).all()


def list_calendar_bookings(
    org_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    equipment_id: int | None = None,
) -> list[Booking]:
    """
    Active bookings for the calendar view, oldest start first.

    With a range, only bookings overlapping [start_date, end_date] are listed.
    equipment_id matches legacy bookings and bookings with a line for it.
    """
    query = db.session.query(Booking).filter(
        Booking.org_id == org_id,
        Booking.status.in_(ACTIVE_STATUSES),
    )
    if start_date is not None and end_date is not None:
        query = query.filter(Booking.start_date <= end_date, start_date <= Booking.end_date)
    if equipment_id is not None:
        query = query.filter(or_(
            Booking.equipment_id == equipment_id,
            Booking.items.any(BookingItem.equipment_id == equipment_id),
        ))
    return query.order_by(Booking.start_date, Booking.id).all()


def calendar_event(booking: Booking) -> dict:
    """One calendar entry; the main equipment is the legacy one or the first line's."""
    equipment = booking.equipment or (booking.items[0].equipment if booking.items else None)
    customer_name = booking.customer.name if booking.customer else None
    equipment_name = equipment.name if equipment else None
    return {
        "id": booking.id,
        "booking_number": booking.booking_number,
        "title": f"{equipment_name or 'No equipment'} - {customer_name}",
        "start": to_iso_date(booking.start_date),
        "end": to_iso_date(booking.end_date),
        "all_day": True,
        "status": booking.status,
        "equipment_id": equipment.id if equipment else None,
        "equipment_name": equipment_name,
        "equipment_category": equipment.category if equipment else None,
        "customer_id": booking.customer_id,
        "customer_name": customer_name,
        "customer_phone": booking.customer.phone if booking.customer else None,
        "total_price_cents": booking.total_price_cents,
        "notes": booking.notes,
        "items_count": len(booking.items),
    }


def get_recent_movements(org_id: int, booking_id: int, limit: int = 20) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.org_id == org_id, StockMovement.booking_id == booking_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def get_booking_detail(org_id: int, booking_id: int) -> dict:
    booking = get_booking(org_id, booking_id)
    data = booking.to_dict()
    data["stock_movements"] = [m.to_dict() for m in get_recent_movements(org_id, booking_id)]
    return data


# =============================================================================
# CREATE
# =============================================================================

def _require_customer(org_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter(
        Customer.id == customer_id,
        Customer.org_id == org_id,
    ).first()
    if not customer:
        raise NotFoundError("Customer", customer_id)
    return customer


def _check_line_stock(
    equipment: Equipment,
    quantity: int,
    start_date: date,
    end_date: date,
    *,
    exclude_booking_id: int | None = None,
    check_live: bool = True,
) -> None:
    """Raise StockConflictError unless `quantity` units are free (live and for the period)."""
    if check_live and not availability_service.check_live_availability(equipment, quantity):
        current_app.logger.warning(
            "Stock conflict (live): equipment=%s requested=%s available=%s",
            equipment.id, quantity, equipment.available_stock,
        )
        raise StockConflictError(
            f"Insufficient stock of {equipment.name!r}: available {equipment.available_stock}, "
            f"requested {quantity}",
            equipment_id=equipment.id,
            requested=quantity,
            available=equipment.available_stock,
        )

    result = availability_service.check_period_availability(
        equipment,
        start_date,
        end_date,
        quantity,
        exclude_booking_id=exclude_booking_id,
    )
    if not result.available:
        current_app.logger.warning(
            "Stock conflict (period): equipment=%s requested=%s available_for_period=%s",
            equipment.id, quantity, result.available_for_period,
        )
        raise StockConflictError(
            result.message,
            equipment_id=equipment.id,
            requested=quantity,
            available=max(result.available_for_period, 0),
        )


def create_booking(
    *,
    org_id: int,
    user_id: int | None,
    customer_id: int,
    start_date: date,
    end_date: date,
    items: list[dict] | None = None,
    equipment_id: int | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    total_price_cents: int | None = None,
    notes: str | None = None,
    status: str = BOOKING_STATUS_PENDING,
    customer_site_id: int | None = None,
) -> Booking:
    """
    Create a booking and reserve stock for every line, atomically.

    Steps (one transaction):
    1. Plan quota
    2. Customer belongs to tenant
    3. Normalize to line items; reject an empty list
    4. Per line: lock equipment, live check, period check. Lines for the same
       equipment in one request are checked against their combined quantity.
    5. Price per line: unit_price * qty * days, else the pricing calculator
    6. Insert Booking + BookingItems, reserve() each line (RENTAL_OUT)
    7. Activity log

    Raises:
        PlanLimitExceededError, NotFoundError, StockConflictError, ValueError
    """
    lines = normalize_line_items(items, equipment_id)
    if not lines:
        raise ValueError("At least one item (or equipment_id) is required")
    if status not in ACTIVE_STATUSES:
        raise InvalidStateTransitionError(f"Bookings cannot be created as {status}")

    days = inclusive_day_count(start_date, end_date)

    def _op() -> Booking:
        limit = plan_limit_service.check_booking_limit(org_id)
        if not limit.allowed:
            raise PlanLimitExceededError(
                limit.message or "Booking limit reached",
                limit_type="bookings",
                current=limit.current,
                max=limit.max,
                upgrade_url=current_app.config.get("PLAN_UPGRADE_URL"),
            )

        _require_customer(org_id, customer_id)

        # Lock and validate everything before the first write
        equipment_by_id: dict[int, Equipment] = {}
        requested_by_id: dict[int, int] = {}
        for line in lines:
            equipment = equipment_by_id.get(line.equipment_id)
            if equipment is None:
                equipment = ledger.get_equipment_for_update(org_id, line.equipment_id)
                equipment_by_id[line.equipment_id] = equipment
            requested = requested_by_id.get(line.equipment_id, 0) + line.quantity
            requested_by_id[line.equipment_id] = requested
            _check_line_stock(equipment, requested, start_date, end_date)

        priced = []
        unit_price_overrides = []
        for line in lines:
            equipment = equipment_by_id[line.equipment_id]
            if line.unit_price_cents is not None:
                unit_price = line.unit_price_cents
                line_total = pricing_service.line_total(unit_price, line.quantity, days)
                if unit_price != equipment.price_per_day_cents:
                    unit_price_overrides.append(equipment.id)
            else:
                quote = pricing_service.calculate_rental_price(equipment, days, line.quantity)
                unit_price = quote.price_per_day_cents
                line_total = quote.total_price_cents
            pricing_service.ensure_within_limit(line_total, f"Line total for equipment {equipment.id}")
            priced.append((line, unit_price, line_total))

        if total_price_cents is not None:
            booking_total = total_price_cents
        else:
            booking_total = pricing_service.ensure_within_limit(sum(total for _, _, total in priced))

        now = utcnow()
        booking = Booking(
            org_id=org_id,
            booking_number=next_document_number(
                org_id=org_id,
                document_type=BOOKING_DOCUMENT_TYPE,
                prefix=_booking_prefix(),
            ),
            customer_id=customer_id,
            customer_site_id=customer_site_id,
            equipment_id=equipment_id if not items else None,
            start_date=start_date,
            end_date=end_date,
            start_time=start_time,
            end_time=end_time,
            total_price_cents=booking_total,
            status=status,
            notes=notes,
            created_by_user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(booking)
        db.session.flush()

        for line, unit_price, line_total in priced:
            item = BookingItem(
                booking_id=booking.id,
                equipment_id=line.equipment_id,
                quantity=line.quantity,
                unit_price_cents=unit_price,
                total_price_cents=line_total,
                notes=line.notes,
            )
            db.session.add(item)
            ledger.reserve(
                equipment_by_id[line.equipment_id],
                line.quantity,
                user_id=user_id,
                reason=f"Booking #{booking.booking_number}",
                booking_id=booking.id,
            )

        db.session.flush()

        log_activity(
            action="CREATE",
            entity="BOOKING",
            entity_id=booking.id,
            description=(
                f"Booking {booking.booking_number} created: {len(lines)} item(s), "
                f"{to_iso_date(start_date)} to {to_iso_date(end_date)}"
            ),
            metadata={
                "booking_number": booking.booking_number,
                "customer_id": customer_id,
                "days": days,
                "total_price_cents": booking_total,
                "items": [
                    {"equipment_id": line.equipment_id, "quantity": line.quantity}
                    for line in lines
                ],
                "unit_price_overrides": unit_price_overrides,
            },
            user_id=user_id,
            org_id=org_id,
        )
        return booking

    booking = atomic(_op)
    current_app.logger.info(
        "Booking %s created (org=%s, items=%d)", booking.booking_number, org_id, len(lines)
    )
    return booking


# =============================================================================
# STATUS / EDIT
# =============================================================================

def _release_lines(booking: Booking, *, movement_type: str, user_id: int | None, reason: str) -> int:
    """
    Return every still-pending unit of `booking` to available stock.

    Units already returned or marked damaged by return_service were released
    then and are not released twice. Returns the number of units released.
    """
    released = 0
    for line in booking_lines(booking):
        pending = line.pending_qty
        if pending <= 0:
            continue
        equipment = ledger.get_equipment_for_update(booking.org_id, line.equipment_id)
        ledger.release(
            equipment,
            pending,
            movement_type=movement_type,
            user_id=user_id,
            reason=reason,
            booking_id=booking.id,
        )
        if line.item is not None and movement_type == ledger.RENTAL_RETURN:
            line.item.returned_qty += pending
        released += pending
    return released


def _revalidate_period(booking: Booking, start_date: date, end_date: date) -> None:
    """Date edit on an active booking: check the new range, ignoring its own hold."""
    requested_by_id: dict[int, int] = {}
    for line in booking_lines(booking):
        if line.pending_qty <= 0:
            continue
        requested_by_id[line.equipment_id] = requested_by_id.get(line.equipment_id, 0) + line.pending_qty
    for equipment_id, requested in requested_by_id.items():
        equipment = ledger.get_equipment_for_update(booking.org_id, equipment_id)
        _check_line_stock(
            equipment,
            requested,
            start_date,
            end_date,
            exclude_booking_id=booking.id,
            check_live=False,
        )


def update_booking(
    *,
    org_id: int,
    user_id: int | None,
    booking_id: int,
    patch: dict,
) -> Booking:
    """
    Partial update of status, dates, times, price and notes.

    Stock effects:
    - PENDING/CONFIRMED -> COMPLETED: release pending units (RENTAL_RETURN)
    - PENDING/CONFIRMED -> CANCELLED: release pending units (ADJUSTMENT)
    - PENDING <-> CONFIRMED: status only
    - any change out of COMPLETED/CANCELLED: InvalidStateTransitionError
    Date edits are only allowed on active bookings and are re-validated
    against other bookings.
    """
    def _op() -> Booking:
        booking = get_booking_for_update(org_id, booking_id)
        previous_status = booking.status
        new_status = patch.get("status", previous_status)

        if previous_status in TERMINAL_STATUSES and new_status != previous_status:
            raise InvalidStateTransitionError(
                f"Booking {booking.booking_number} is {previous_status} and cannot become {new_status}"
            )

        new_start = patch.get("start_date", booking.start_date)
        new_end = patch.get("end_date", booking.end_date)
        dates_changed = new_start != booking.start_date or new_end != booking.end_date
        if dates_changed:
            if previous_status in TERMINAL_STATUSES:
                raise InvalidStateTransitionError(
                    f"Cannot change dates of a {previous_status} booking"
                )
            if new_end < new_start:
                raise ValueError("end_date must be on or after start_date")
            if new_status in ACTIVE_STATUSES:
                _revalidate_period(booking, new_start, new_end)
            booking.start_date = new_start
            booking.end_date = new_end

        for key in ("start_time", "end_time", "total_price_cents", "notes", "paid_at"):
            if key in patch:
                setattr(booking, key, patch[key])

        released = 0
        if new_status != previous_status:
            if new_status == BOOKING_STATUS_COMPLETED:
                released = _release_lines(
                    booking,
                    movement_type=ledger.RENTAL_RETURN,
                    user_id=user_id,
                    reason=f"Booking #{booking.booking_number} completed",
                )
            elif new_status == BOOKING_STATUS_CANCELLED:
                released = _release_lines(
                    booking,
                    movement_type=ledger.ADJUSTMENT,
                    user_id=user_id,
                    reason=f"Booking #{booking.booking_number} cancelled",
                )
            booking.status = new_status

        booking.updated_at = utcnow()
        db.session.flush()

        log_activity(
            action="UPDATE",
            entity="BOOKING",
            entity_id=booking.id,
            description=f"Booking {booking.booking_number} updated",
            metadata={
                "changes": sorted(patch.keys()),
                "previous_status": previous_status,
                "status": booking.status,
                "units_released": released,
            },
            user_id=user_id,
            org_id=org_id,
        )
        return booking

    return atomic(_op)


def cancel_booking(*, org_id: int, user_id: int | None, booking_id: int) -> tuple[Booking, bool]:
    """
    Cancel a booking, releasing its pending stock with ADJUSTMENT movements.

    Idempotent: an already-CANCELLED booking is returned unchanged with no new
    movements. Returns (booking, changed).

    Raises InvalidStateTransitionError for COMPLETED bookings.
    """
    def _op() -> tuple[Booking, bool]:
        booking = get_booking_for_update(org_id, booking_id)
        if booking.status == BOOKING_STATUS_CANCELLED:
            return booking, False
        if booking.status == BOOKING_STATUS_COMPLETED:
            raise InvalidStateTransitionError(
                f"Booking {booking.booking_number} is COMPLETED and cannot be cancelled"
            )

        released = _release_lines(
            booking,
            movement_type=ledger.ADJUSTMENT,
            user_id=user_id,
            reason=f"Booking #{booking.booking_number} cancelled",
        )
        previous_status = booking.status
        booking.status = BOOKING_STATUS_CANCELLED
        booking.updated_at = utcnow()
        db.session.flush()

        log_activity(
            action="CANCEL",
            entity="BOOKING",
            entity_id=booking.id,
            description=f"Booking {booking.booking_number} cancelled",
            metadata={"previous_status": previous_status, "units_released": released},
            user_id=user_id,
            org_id=org_id,
        )
        return booking, True

    booking, changed = atomic(_op)
    if changed:
        current_app.logger.info("Booking %s cancelled (org=%s)", booking.booking_number, org_id)
    return booking, changed
