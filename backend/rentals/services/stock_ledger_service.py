# Overview: The only write path for Equipment stock counters.

"""
Stock Ledger

WHY: Equipment counters are shared mutable state touched by every concurrent
booking. Funnelling every change through one module means every change is
paired with exactly one StockMovement and re-checked against the counter
invariant before it can be flushed.

INVARIANT (checked after every mutation):
    total_stock = available_stock + reserved_stock + maintenance_stock + damaged_stock
    every counter >= 0

TRANSACTIONS: functions here only add/flush. The caller (booking_service,
return_service, stock_service) owns the transaction and commits or rolls back
the whole multi-row operation as a unit.

reserve() does NOT re-validate availability: the caller has already run the
availability checks against the same locked row in the same transaction.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, StockInvariantError
from ..models import Equipment, StockMovement
from .concurrency import lock_for_update


COUNTER_FIELDS = (
    "available_stock",
    "reserved_stock",
    "maintenance_stock",
    "damaged_stock",
)

# Movement types
RENTAL_OUT = "RENTAL_OUT"
RENTAL_RETURN = "RENTAL_RETURN"
ADJUSTMENT = "ADJUSTMENT"
DAMAGE = "DAMAGE"
PURCHASE = "PURCHASE"
LOSS = "LOSS"
MAINTENANCE_OUT = "MAINTENANCE_OUT"
MAINTENANCE_IN = "MAINTENANCE_IN"
REPAIR = "REPAIR"


def get_equipment_for_update(org_id: int, equipment_id: int) -> Equipment:
    """
    Load an equipment row with a write lock, scoped to the tenant.

    Raises NotFoundError when the row is absent or belongs to another org.
    """
    equipment = lock_for_update(
        db.session.query(Equipment).filter(
            Equipment.id == equipment_id,
            Equipment.org_id == org_id,
        )
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    return equipment


def check_invariant(equipment: Equipment) -> None:
    for field in COUNTER_FIELDS + ("total_stock",):
        if getattr(equipment, field) < 0:
            raise StockInvariantError(
                f"{field} of equipment {equipment.name!r} would become negative",
                equipment_id=equipment.id,
            )
    parts = sum(getattr(equipment, field) for field in COUNTER_FIELDS)
    if equipment.total_stock != parts:
        raise StockInvariantError(
            f"Stock counters of equipment {equipment.name!r} out of balance: "
            f"total {equipment.total_stock} != {parts}",
            equipment_id=equipment.id,
        )


def _apply(
    equipment: Equipment,
    deltas: dict[str, int],
    *,
    movement_type: str,
    quantity: int,
    tracked_field: str,
    user_id: int | None,
    reason: str | None,
    booking_id: int | None = None,
) -> StockMovement:
    previous = getattr(equipment, tracked_field)

    for field, delta in deltas.items():
        setattr(equipment, field, getattr(equipment, field) + delta)
    check_invariant(equipment)

    movement = StockMovement(
        org_id=equipment.org_id,
        equipment_id=equipment.id,
        booking_id=booking_id,
        user_id=user_id,
        type=movement_type,
        quantity=quantity,
        previous_stock=previous,
        new_stock=getattr(equipment, tracked_field),
        reason=reason[:500] if reason else None,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def reserve(
    equipment: Equipment,
    quantity: int,
    *,
    user_id: int | None,
    reason: str | None,
    booking_id: int | None = None,
) -> StockMovement:
    """available -= qty, reserved += qty; RENTAL_OUT."""
    return _apply(
        equipment,
        {"available_stock": -quantity, "reserved_stock": quantity},
        movement_type=RENTAL_OUT,
        quantity=quantity,
        tracked_field="available_stock",
        user_id=user_id,
        reason=reason,
        booking_id=booking_id,
    )


def release(
    equipment: Equipment,
    quantity: int,
    *,
    movement_type: str = RENTAL_RETURN,
    user_id: int | None,
    reason: str | None,
    booking_id: int | None = None,
) -> StockMovement:
    """
    reserved -= qty, available += qty.

    movement_type is RENTAL_RETURN for returns/completion and ADJUSTMENT for
    cancellation.
    """
    return _apply(
        equipment,
        {"reserved_stock": -quantity, "available_stock": quantity},
        movement_type=movement_type,
        quantity=quantity,
        tracked_field="available_stock",
        user_id=user_id,
        reason=reason,
        booking_id=booking_id,
    )


def mark_damaged(
    equipment: Equipment,
    quantity: int,
    *,
    user_id: int | None,
    reason: str | None,
    booking_id: int | None = None,
) -> StockMovement:
    """reserved -= qty, damaged += qty; DAMAGE."""
    return _apply(
        equipment,
        {"reserved_stock": -quantity, "damaged_stock": quantity},
        movement_type=DAMAGE,
        quantity=quantity,
        tracked_field="damaged_stock",
        user_id=user_id,
        reason=reason,
        booking_id=booking_id,
    )


def adjust(
    equipment: Equipment,
    deltas: dict[str, int],
    *,
    movement_type: str,
    quantity: int,
    user_id: int | None,
    reason: str | None,
    tracked_field: str = "available_stock",
    booking_id: int | None = None,
) -> StockMovement:
    """
    Generic counter move for manual stock operations.

    `deltas` maps counter names (including total_stock) to signed changes.
    """
    for field in deltas:
        if field not in COUNTER_FIELDS and field != "total_stock":
            raise ValueError(f"Unknown stock counter: {field}")
    return _apply(
        equipment,
        deltas,
        movement_type=movement_type,
        quantity=quantity,
        tracked_field=tracked_field,
        user_id=user_id,
        reason=reason,
        booking_id=booking_id,
    )
