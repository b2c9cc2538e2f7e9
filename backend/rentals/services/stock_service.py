# Overview: Manual stock operations and stock read models.

"""
Stock management outside the booking flow.

Manual movements (PURCHASE, LOSS, MAINTENANCE_OUT/IN, DAMAGE, REPAIR,
ADJUSTMENT) are translated into counter deltas here and written through
stock_ledger_service.adjust, so the ledger stays the only code that touches
the counters. reserved_stock is never a manual target: it moves only with the
pending quantity of booking lines.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import MovementNotAllowedError, NotFoundError, StockConflictError
from ..models import Booking, BookingItem, Equipment, EquipmentCost, StockMovement
from . import stock_ledger_service as ledger
from .activity_service import log_activity
from .concurrency import atomic


ACTIVE_STATUSES = ("PENDING", "CONFIRMED")

# reserved_stock moves only with a booking line
BOOKING_MOVEMENT_TYPES = (ledger.RENTAL_OUT, ledger.RENTAL_RETURN)


def _insufficient(equipment: Equipment, counter: str, quantity: int) -> StockConflictError:
    have = getattr(equipment, counter)
    label = counter.replace("_stock", "")
    return StockConflictError(
        f"Insufficient {label} stock of {equipment.name!r}: {label} {have}, requested {quantity}",
        equipment_id=equipment.id,
        requested=quantity,
        available=have,
    )


def movement_deltas(equipment: Equipment, movement_type: str, quantity: int) -> tuple[dict[str, int], str]:
    """
    Counter deltas for a manual movement, plus the counter it is tracked on.

    ADJUSTMENT takes a signed quantity (both total and available move);
    every other type takes a positive quantity.
    Raises StockConflictError when the source counter is too small.
    """
    if movement_type == ledger.PURCHASE:
        return {"total_stock": quantity, "available_stock": quantity}, "available_stock"

    if movement_type == ledger.ADJUSTMENT:
        if quantity < 0 and equipment.available_stock < -quantity:
            raise _insufficient(equipment, "available_stock", -quantity)
        return {"total_stock": quantity, "available_stock": quantity}, "available_stock"

    if movement_type in BOOKING_MOVEMENT_TYPES:
        raise MovementNotAllowedError(
            f"{movement_type} movements are recorded by bookings and returns, not manually",
            movement_type=movement_type,
        )

    if movement_type == ledger.DAMAGE:
        # Reserved units are damaged through a booking return
        if equipment.available_stock < quantity:
            raise _insufficient(equipment, "available_stock", quantity)
        return {"available_stock": -quantity, "damaged_stock": quantity}, "damaged_stock"

    if movement_type == ledger.LOSS:
        if equipment.available_stock < quantity:
            raise _insufficient(equipment, "available_stock", quantity)
        return {"total_stock": -quantity, "available_stock": -quantity}, "available_stock"

    if movement_type == ledger.MAINTENANCE_OUT:
        if equipment.available_stock < quantity:
            raise _insufficient(equipment, "available_stock", quantity)
        return {"available_stock": -quantity, "maintenance_stock": quantity}, "maintenance_stock"

    if movement_type == ledger.MAINTENANCE_IN:
        if equipment.maintenance_stock < quantity:
            raise _insufficient(equipment, "maintenance_stock", quantity)
        return {"maintenance_stock": -quantity, "available_stock": quantity}, "maintenance_stock"

    if movement_type == ledger.REPAIR:
        if equipment.damaged_stock < quantity:
            raise _insufficient(equipment, "damaged_stock", quantity)
        return {"damaged_stock": -quantity, "available_stock": quantity}, "damaged_stock"

    raise ValueError(f"Unsupported movement type: {movement_type}")


def record_movement(
    *,
    org_id: int,
    user_id: int | None,
    equipment_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None,
    booking_id: int | None = None,
) -> tuple[StockMovement, Equipment]:
    def _op():
        equipment = ledger.get_equipment_for_update(org_id, equipment_id)
        if booking_id is not None:
            booking = db.session.query(Booking).filter(
                Booking.id == booking_id, Booking.org_id == org_id
            ).first()
            if not booking:
                raise NotFoundError("Booking", booking_id)

        deltas, tracked = movement_deltas(equipment, movement_type, quantity)
        movement = ledger.adjust(
            equipment,
            deltas,
            movement_type=movement_type,
            quantity=abs(quantity),
            user_id=user_id,
            reason=reason,
            tracked_field=tracked,
            booking_id=booking_id,
        )
        log_activity(
            action="CREATE",
            entity="STOCK_MOVEMENT",
            entity_id=movement.id,
            description=f"Stock movement {movement_type}: {quantity} unit(s) of {equipment.name!r}",
            metadata={
                "equipment_id": equipment.id,
                "movement_type": movement_type,
                "quantity": quantity,
                "previous_stock": movement.previous_stock,
                "new_stock": movement.new_stock,
                "reason": reason,
            },
            user_id=user_id,
            org_id=org_id,
        )
        return movement, equipment

    movement, equipment = atomic(_op)
    current_app.logger.info(
        "Stock movement %s x%d on equipment %s (org=%s)", movement_type, quantity, equipment_id, org_id
    )
    return movement, equipment


def set_total_stock(
    *,
    org_id: int,
    user_id: int | None,
    equipment_id: int,
    new_total: int,
    reason: str,
) -> tuple[StockMovement | None, Equipment]:
    """
    Set total_stock directly; available is recomputed from the other counters.

    Cannot go below reserved + maintenance + damaged. Setting the current
    total is a no-op (no movement).
    """
    def _op():
        equipment = ledger.get_equipment_for_update(org_id, equipment_id)
        committed = equipment.reserved_stock + equipment.maintenance_stock + equipment.damaged_stock
        if new_total < committed:
            raise StockConflictError(
                f"Cannot set total stock of {equipment.name!r} to {new_total}: "
                f"{committed} unit(s) are committed ({equipment.reserved_stock} reserved, "
                f"{equipment.maintenance_stock} in maintenance, {equipment.damaged_stock} damaged)",
                equipment_id=equipment.id,
                requested=new_total,
                available=committed,
            )

        difference = new_total - equipment.total_stock
        if difference == 0:
            return None, equipment

        previous_total = equipment.total_stock
        movement = ledger.adjust(
            equipment,
            {"total_stock": difference, "available_stock": difference},
            movement_type=ledger.ADJUSTMENT,
            quantity=abs(difference),
            user_id=user_id,
            reason=(
                f"Manual adjustment: {reason}. Total stock "
                f"{'increased' if difference > 0 else 'reduced'} from {previous_total} to {new_total}"
            ),
        )
        log_activity(
            action="UPDATE",
            entity="EQUIPMENT",
            entity_id=equipment.id,
            description=(
                f"Stock adjustment of {equipment.name!r}: {previous_total} -> {new_total}. Reason: {reason}"
            ),
            metadata={
                "previous_total_stock": previous_total,
                "new_total_stock": new_total,
                "difference": difference,
                "reason": reason,
            },
            user_id=user_id,
            org_id=org_id,
        )
        return movement, equipment

    return atomic(_op)


# =============================================================================
# READS
# =============================================================================

def _get_equipment(org_id: int, equipment_id: int) -> Equipment:
    equipment = db.session.query(Equipment).filter(
        Equipment.id == equipment_id, Equipment.org_id == org_id
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    return equipment


def get_stock_overview(org_id: int) -> dict:
    equipments = (
        db.session.query(Equipment)
        .filter(Equipment.org_id == org_id)
        .order_by(Equipment.name)
        .all()
    )
    rows = [e.to_dict() for e in equipments]
    return {
        "equipments": rows,
        "totals": {
            "total_stock": sum(e.total_stock for e in equipments),
            "available_stock": sum(e.available_stock for e in equipments),
            "reserved_stock": sum(e.reserved_stock for e in equipments),
            "maintenance_stock": sum(e.maintenance_stock for e in equipments),
            "damaged_stock": sum(e.damaged_stock for e in equipments),
            "low_stock_count": sum(1 for e in equipments if e.is_low_stock),
        },
    }


def get_stock_detail(org_id: int, equipment_id: int) -> dict:
    equipment = _get_equipment(org_id, equipment_id)

    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.equipment_id == equipment.id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(10)
        .all()
    )
    active_items = (
        db.session.query(BookingItem)
        .join(Booking, BookingItem.booking_id == Booking.id)
        .filter(
            BookingItem.equipment_id == equipment.id,
            Booking.org_id == org_id,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Booking.start_date)
        .all()
    )
    costs = (
        db.session.query(EquipmentCost)
        .filter(EquipmentCost.equipment_id == equipment.id)
        .order_by(EquipmentCost.date.desc(), EquipmentCost.id.desc())
        .limit(5)
        .all()
    )

    utilization = 0.0
    if equipment.total_stock > 0:
        utilization = round(equipment.reserved_stock * 100 / equipment.total_stock, 1)

    active = []
    for item in active_items:
        data = item.to_dict()
        data["booking_number"] = item.booking.booking_number
        data["start_date"] = item.booking.start_date.isoformat()
        data["end_date"] = item.booking.end_date.isoformat()
        data["status"] = item.booking.status
        active.append(data)

    return {
        "equipment": equipment.to_dict(),
        "recent_movements": [m.to_dict() for m in movements],
        "active_booking_items": active,
        "recent_costs": [c.to_dict() for c in costs],
        "metrics": {
            "utilization_rate": utilization,
            "is_low_stock": equipment.is_low_stock,
        },
    }


def classify_stock_level(equipment: Equipment) -> str | None:
    """OUT_OF_STOCK / CRITICAL (<= min/2) / LOW (<= min), or None when healthy."""
    if equipment.available_stock <= 0:
        return "OUT_OF_STOCK"
    if equipment.available_stock > equipment.min_stock_level:
        return None
    if equipment.available_stock <= equipment.min_stock_level / 2:
        return "CRITICAL"
    return "LOW"


def list_low_stock(org_id: int) -> dict:
    equipments = (
        db.session.query(Equipment)
        .filter(
            Equipment.org_id == org_id,
            Equipment.status == "ACTIVE",
            Equipment.available_stock <= Equipment.min_stock_level,
        )
        .order_by(Equipment.available_stock, Equipment.name)
        .all()
    )

    rows = []
    stats = {"out_of_stock": 0, "critical": 0, "low": 0}
    for equipment in equipments:
        level = classify_stock_level(equipment) or "LOW"
        stats[level.lower()] += 1
        data = equipment.to_dict()
        data["alert_level"] = level
        rows.append(data)

    stats["total"] = len(rows)
    return {"equipments": rows, "stats": stats}


ALERT_SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}


def _alert(prefix: str, alert_type: str, severity: str, equipment: Equipment, message: str, details: dict) -> dict:
    return {
        "id": f"{prefix}-{equipment.id}",
        "type": alert_type,
        "severity": severity,
        "equipment": {"id": equipment.id, "name": equipment.name, "category": equipment.category},
        "message": message,
        "details": details,
    }


def list_stock_alerts(org_id: int) -> dict:
    """
    Dashboard alerts for every non-inactive equipment, most severe first.

    An equipment can raise several alerts: out of stock or low stock, plus
    damaged units, plus units in maintenance.
    """
    equipments = (
        db.session.query(Equipment)
        .filter(Equipment.org_id == org_id, Equipment.status != "INACTIVE")
        .order_by(Equipment.name)
        .all()
    )

    alerts = []
    counts = {"low_stock_count": 0, "out_of_stock_count": 0, "damaged_count": 0, "in_maintenance_count": 0}
    for eq in equipments:
        if eq.available_stock == 0:
            counts["out_of_stock_count"] += 1
            alerts.append(_alert(
                "out", "OUT_OF_STOCK", "critical", eq,
                f"{eq.name} is out of stock",
                {"total_stock": eq.total_stock, "reserved_stock": eq.reserved_stock},
            ))
        elif eq.available_stock <= eq.min_stock_level:
            counts["low_stock_count"] += 1
            alerts.append(_alert(
                "low", "LOW_STOCK", "warning", eq,
                f"{eq.name} is low on stock ({eq.available_stock} available)",
                {"available_stock": eq.available_stock, "min_stock_level": eq.min_stock_level},
            ))
        if eq.damaged_stock > 0:
            counts["damaged_count"] += 1
            alerts.append(_alert(
                "dmg", "DAMAGED", "warning", eq,
                f"{eq.damaged_stock} unit(s) of {eq.name} damaged",
                {"damaged_stock": eq.damaged_stock},
            ))
        if eq.maintenance_stock > 0:
            counts["in_maintenance_count"] += 1
            alerts.append(_alert(
                "mnt", "MAINTENANCE", "info", eq,
                f"{eq.maintenance_stock} unit(s) of {eq.name} in maintenance",
                {"maintenance_stock": eq.maintenance_stock},
            ))

    # sorted() is stable, so equipment name order holds within a severity
    alerts = sorted(alerts, key=lambda a: ALERT_SEVERITY_ORDER[a["severity"]])
    return {"alerts": alerts, "summary": {"total_alerts": len(alerts), **counts}}


def list_movements(
    org_id: int,
    equipment_id: int,
    *,
    movement_type: str | None = None,
    limit: int = 50,
) -> list[StockMovement]:
    equipment = _get_equipment(org_id, equipment_id)
    query = db.session.query(StockMovement).filter(StockMovement.equipment_id == equipment.id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    return query.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()


def find_invariant_violations(org_id: int | None = None) -> list[Equipment]:
    """Equipment rows whose counters do not add up (used by `flask stock check`)."""
    query = db.session.query(Equipment)
    if org_id is not None:
        query = query.filter(Equipment.org_id == org_id)
    bad = []
    for equipment in query.order_by(Equipment.id).all():
        parts = (
            equipment.available_stock
            + equipment.reserved_stock
            + equipment.maintenance_stock
            + equipment.damaged_stock
        )
        if parts != equipment.total_stock or min(
            equipment.available_stock,
            equipment.reserved_stock,
            equipment.maintenance_stock,
            equipment.damaged_stock,
        ) < 0:
            bad.append(equipment)
    return bad
