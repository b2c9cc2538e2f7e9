# Overview: Service-layer operations for booking returns; encapsulates business logic and database work.

"""
Return / Damage Processing Service

WHY: Rented equipment comes back in batches and sometimes broken. Each
BookingItem tracks how many units came back fine (returned_qty) and how many
came back damaged (damaged_qty); the rest is still out (pending_qty).

DESIGN PRINCIPLES:
- A return submission is all-or-nothing: any invalid line aborts the whole
  submission and no counter moves
- OK units go reserved -> available (RENTAL_RETURN)
- Damaged units go reserved -> damaged (DAMAGE), optionally with a REPAIR cost
- When every item is fully accounted for, the booking auto-completes

INVARIANT: 0 <= returned_qty + damaged_qty <= quantity for every item.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, InvalidStateTransitionError, QuantityOverrunError
from ..models import Booking, BookingItem, EquipmentCost
from . import stock_ledger_service as ledger
from .activity_service import log_activity
from .booking_service import (
    BOOKING_STATUS_COMPLETED,
    TERMINAL_STATUSES,
    get_booking,
    get_booking_for_update,
)
from .concurrency import atomic
from rentals.time_utils import utcnow


@dataclass
class ReturnSummary:
    total_returned: int
    total_damaged: int
    completed: bool

    def to_dict(self) -> dict:
        return {
            "total_returned": self.total_returned,
            "total_damaged": self.total_damaged,
            "completed": self.completed,
        }


def _append_note(existing: str | None, addition: str) -> str:
    return f"{existing}\n{addition}" if existing else addition


def _find_item(booking: Booking, booking_item_id: int) -> BookingItem:
    for item in booking.items:
        if item.id == booking_item_id:
            return item
    raise NotFoundError("Booking item", booking_item_id)


def process_return(
    *,
    org_id: int,
    user_id: int | None,
    booking_id: int,
    items: list[dict],
    notes: str | None = None,
) -> tuple[Booking, ReturnSummary]:
    """
    Record returned and damaged quantities for one or more booking items.

    Each entry of `items`:
        {booking_item_id, returned_qty, damaged_qty, damage_notes, repair_cost_cents}

    Raises:
        NotFoundError: booking or booking item not found
        InvalidStateTransitionError: booking is COMPLETED or CANCELLED
        QuantityOverrunError: returned + damaged exceeds pending for an item
    """
    def _op() -> tuple[Booking, ReturnSummary]:
        booking = get_booking_for_update(org_id, booking_id)
        if booking.status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(
                f"Booking {booking.booking_number} is {booking.status}; returns are not accepted"
            )

        total_returned = 0
        total_damaged = 0

        for entry in items:
            item = _find_item(booking, entry["booking_item_id"])
            returned_qty = entry.get("returned_qty") or 0
            damaged_qty = entry.get("damaged_qty") or 0
            submitted = returned_qty + damaged_qty
            pending = item.pending_qty

            if submitted > pending:
                name = item.equipment.name if item.equipment else f"equipment {item.equipment_id}"
                raise QuantityOverrunError(
                    f"Return for {name} exceeds pending quantity: "
                    f"submitted {submitted}, pending {pending}",
                    booking_item_id=item.id,
                    submitted=submitted,
                    pending=pending,
                )
            if submitted == 0:
                continue

            item.returned_qty += returned_qty
            item.damaged_qty += damaged_qty
            if entry.get("damage_notes"):
                item.notes = _append_note(item.notes, f"Damage: {entry['damage_notes']}")

            equipment = ledger.get_equipment_for_update(org_id, item.equipment_id)

            if returned_qty > 0:
                ledger.release(
                    equipment,
                    returned_qty,
                    movement_type=ledger.RENTAL_RETURN,
                    user_id=user_id,
                    reason=f"Return from booking #{booking.booking_number}",
                    booking_id=booking.id,
                )

            if damaged_qty > 0:
                damage_reason = f"Damaged on booking #{booking.booking_number}"
                if entry.get("damage_notes"):
                    damage_reason = f"{damage_reason}: {entry['damage_notes']}"
                ledger.mark_damaged(
                    equipment,
                    damaged_qty,
                    user_id=user_id,
                    reason=damage_reason,
                    booking_id=booking.id,
                )

                repair_cost = entry.get("repair_cost_cents")
                if repair_cost and repair_cost > 0:
                    db.session.add(EquipmentCost(
                        org_id=org_id,
                        equipment_id=item.equipment_id,
                        booking_id=booking.id,
                        type="REPAIR",
                        description=(
                            f"Repair of {damaged_qty} unit(s) damaged on booking "
                            f"#{booking.booking_number}"
                            + (f": {entry['damage_notes']}" if entry.get("damage_notes") else "")
                        )[:500],
                        amount_cents=repair_cost,
                        date=utcnow(),
                    ))

            total_returned += returned_qty
            total_damaged += damaged_qty

        db.session.flush()

        # Re-read items from the database, not the in-memory list
        db.session.expire(booking, ["items"])
        completed = bool(booking.items) and all(i.is_complete for i in booking.items)
        if completed:
            booking.status = BOOKING_STATUS_COMPLETED
            if notes:
                booking.notes = _append_note(booking.notes, f"Return: {notes}")
        booking.updated_at = utcnow()
        db.session.flush()

        summary = ReturnSummary(
            total_returned=total_returned,
            total_damaged=total_damaged,
            completed=completed,
        )
        log_activity(
            action="RETURN",
            entity="BOOKING",
            entity_id=booking.id,
            description=(
                f"Return on booking {booking.booking_number}: {total_returned} ok, "
                f"{total_damaged} damaged" + (" (completed)" if completed else "")
            ),
            metadata={
                "items_returned": total_returned,
                "items_damaged": total_damaged,
                "completed": completed,
                "notes": notes,
            },
            user_id=user_id,
            org_id=org_id,
        )
        return booking, summary

    booking, summary = atomic(_op)
    current_app.logger.info(
        "Return processed for booking %s: returned=%d damaged=%d completed=%s",
        booking.booking_number, summary.total_returned, summary.total_damaged, summary.completed,
    )
    return booking, summary


def get_return_status(org_id: int, booking_id: int) -> dict:
    """
    Read-only snapshot of how much of each item has come back.

    Returns {booking, items, summary}; each item carries quantity,
    returned_qty, damaged_qty, pending_qty and is_complete.
    """
    booking = get_booking(org_id, booking_id)

    items = []
    for item in booking.items:
        data = item.to_dict()
        data["equipment"] = item.equipment.to_dict() if item.equipment else None
        data["is_complete"] = item.is_complete
        items.append(data)

    summary = {
        "total_items": len(booking.items),
        "total_quantity": sum(i.quantity for i in booking.items),
        "total_returned": sum(i.returned_qty for i in booking.items),
        "total_damaged": sum(i.damaged_qty for i in booking.items),
        "total_pending": sum(i.pending_qty for i in booking.items),
        "all_complete": bool(booking.items) and all(i.is_complete for i in booking.items),
    }

    return {
        "booking": booking.to_dict(include_items=False),
        "items": items,
        "summary": summary,
    }
