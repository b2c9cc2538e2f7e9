from __future__ import annotations
from datetime import date, datetime
from rentals.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Date
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

BOOKING_STATUSES = {"PENDING", "CONFIRMED", "COMPLETED", "CANCELLED"}
CREATE_STATUSES = {"PENDING", "CONFIRMED"}

MOVEMENT_TYPES = {
    "PURCHASE",
    "RENTAL_OUT",
    "RENTAL_RETURN",
    "ADJUSTMENT",
    "DAMAGE",
    "LOSS",
    "MAINTENANCE_OUT",
    "MAINTENANCE_IN",
    "REPAIR",
}

# RENTAL_OUT / RENTAL_RETURN are written by the booking and return flows
MANUAL_MOVEMENT_TYPES = MOVEMENT_TYPES - {"RENTAL_OUT", "RENTAL_RETURN"}


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        payload = {"error": str(self)}
        if self.field:
            payload["field"] = self.field
        return payload


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", key)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)", key)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)", key)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", key)
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", key)
    raise ValidationError(f"{key} must be an integer", key)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", col.key)

    # Calendar dates ("YYYY-MM-DD" or a full ISO datetime)
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date", col.key)
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date", col.key)
            return d
        raise ValidationError(f"{col.key} must be a date", col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", k)

        patch[k] = val

    return patch


def _check_price(key: str, value) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} cannot be negative", key)
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}", key)


def enforce_rules_booking_create(patch: dict, items: list[dict]) -> None:
    """
    Business rules for POST /bookings that SQLAlchemy metadata cannot express.
    `items` are the already-validated line patches.
    """
    start, end = patch.get("start_date"), patch.get("end_date")
    if start and end and end < start:
        raise ValidationError("end_date must be on or after start_date", "end_date")

    if "status" in patch and patch["status"] not in CREATE_STATUSES:
        raise ValidationError("status must be PENDING or CONFIRMED on create", "status")

    _check_price("total_price_cents", patch.get("total_price_cents"))

    if not items and not patch.get("equipment_id"):
        raise ValidationError("At least one item (or equipment_id) is required", "items")

    for idx, item in enumerate(items):
        qty = item.get("quantity")
        if qty is None or qty <= 0:
            raise ValidationError(f"items[{idx}].quantity must be > 0", "quantity")
        _check_price(f"items[{idx}].unit_price_cents", item.get("unit_price_cents"))


def enforce_rules_booking_update(patch: dict) -> None:
    if "status" in patch and patch["status"] not in BOOKING_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(BOOKING_STATUSES))}", "status"
        )
    start, end = patch.get("start_date"), patch.get("end_date")
    if start and end and end < start:
        raise ValidationError("end_date must be on or after start_date", "end_date")
    _check_price("total_price_cents", patch.get("total_price_cents"))


def validate_return_payload(payload: dict) -> tuple[list[dict], str | None]:
    """
    Validate POST /bookings/<id>/return.

    Returns (items, notes) where each item is
    {booking_item_id, returned_qty, damaged_qty, damage_notes, repair_cost_cents}.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list", "items")

    allowed = {"booking_item_id", "returned_qty", "damaged_qty", "damage_notes", "repair_cost_cents"}
    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object", "items")
        for k in raw.keys():
            if k not in allowed:
                raise ValidationError(f"Field not allowed: items[{idx}].{k}", k)
        if raw.get("booking_item_id") is None:
            raise ValidationError(f"items[{idx}].booking_item_id is required", "booking_item_id")

        returned_qty = _coerce_int("returned_qty", raw.get("returned_qty", 0))
        damaged_qty = _coerce_int("damaged_qty", raw.get("damaged_qty", 0))
        if returned_qty < 0:
            raise ValidationError("returned_qty cannot be negative", "returned_qty")
        if damaged_qty < 0:
            raise ValidationError("damaged_qty cannot be negative", "damaged_qty")

        repair_cost = raw.get("repair_cost_cents")
        if repair_cost is not None:
            repair_cost = _coerce_int("repair_cost_cents", repair_cost)
            if repair_cost < 0:
                raise ValidationError("repair_cost_cents cannot be negative", "repair_cost_cents")

        damage_notes = raw.get("damage_notes")
        items.append({
            "booking_item_id": _coerce_int("booking_item_id", raw["booking_item_id"]),
            "returned_qty": returned_qty,
            "damaged_qty": damaged_qty,
            "damage_notes": str(damage_notes).strip() if damage_notes else None,
            "repair_cost_cents": repair_cost,
        })

    notes = payload.get("notes")
    return items, (str(notes).strip() if notes else None)


def enforce_rules_stock_movement(patch: dict) -> None:
    if patch.get("type") not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(sorted(MANUAL_MOVEMENT_TYPES))}", "type"
        )
    qty = patch.get("quantity")
    if qty is None:
        raise ValidationError("quantity is required", "quantity")
    # ADJUSTMENT is signed; everything else moves a positive quantity
    if patch["type"] == "ADJUSTMENT":
        if qty == 0:
            raise ValidationError("quantity cannot be 0", "quantity")
    elif qty <= 0:
        raise ValidationError("quantity must be > 0", "quantity")


def validate_stock_adjustment(payload: dict) -> tuple[int, str]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if "new_total_stock" not in payload:
        raise ValidationError("Missing required fields: new_total_stock", "new_total_stock")
    new_total = _coerce_int("new_total_stock", payload["new_total_stock"])
    if new_total < 0:
        raise ValidationError("new_total_stock cannot be negative", "new_total_stock")
    reason = str(payload.get("reason") or "").strip()
    if not reason:
        raise ValidationError("reason is required", "reason")
    return new_total, reason
