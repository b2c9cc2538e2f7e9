# Overview: Flask API routes for bookings and returns; parses input and returns JSON responses.

# backend/rentals/routes/bookings.py
"""
Booking API Routes

MULTI-TENANT: Every booking operation is scoped to g.org_id (set by
@require_auth). Bookings, customers and equipment of other organizations
are reported as 404.

ERRORS:
- 400 validation / invalid state transition / quantity overrun
- 403 permission denied / plan limit exceeded
- 404 booking, customer, equipment or booking item not found
- 409 stock conflict
- 500 anything unexpected (logged server-side)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Booking, BookingItem
from ..services import booking_service
from ..services import return_service
from ..errors import RentalError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    validate_return_payload,
    enforce_rules_booking_create,
    enforce_rules_booking_update,
    ValidationError,
    BOOKING_STATUSES,
)
from ..decorators import require_auth, require_permission
from rentals.time_utils import parse_iso_date


BOOKING_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "customer_site_id",
        "start_date",
        "end_date",
        "start_time",
        "end_time",
        "notes",
        "equipment_id",
        "total_price_cents",
        "status",
    },
    required_on_create={"customer_id", "start_date", "end_date"},
)

BOOKING_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "status",
        "start_date",
        "end_date",
        "start_time",
        "end_time",
        "total_price_cents",
        "notes",
        "paid_at",
    },
)

BOOKING_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"equipment_id", "quantity", "unit_price_cents", "notes"},
    required_on_create={"equipment_id"},
)


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")


def _error_response(e: RentalError):
    return jsonify(e.to_dict()), e.status_code


def _validate_items(raw_items) -> list[dict]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list", "items")
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("items must be objects", "items")
        item = validate_payload(model=BookingItem, payload=raw, policy=BOOKING_ITEM_POLICY, partial=False)
        item.setdefault("quantity", 1)
        items.append(item)
    return items


# =============================================================================
# LIST / DETAIL
# =============================================================================

@bookings_bp.get("")
@require_auth
@require_permission("VIEW_BOOKINGS")
def list_bookings_route():
    """
    List bookings with items, equipment and customer expanded.

    Query params:
    - status: PENDING / CONFIRMED / COMPLETED / CANCELLED (optional)
    """
    status = request.args.get("status")
    if status and status not in BOOKING_STATUSES:
        return jsonify({"error": f"Invalid status: {status}"}), 400

    bookings = booking_service.list_bookings(g.org_id, status=status)
    return jsonify({"bookings": [b.to_dict() for b in bookings]}), 200


@bookings_bp.get("/calendar")
@require_auth
@require_permission("VIEW_BOOKINGS")
def calendar_route():
    """
    Active bookings as calendar events.

    Query params:
    - start_date, end_date: YYYY-MM-DD (optional, both or neither)
    - equipment_id: int (optional)
    """
    raw_start = request.args.get("start_date")
    raw_end = request.args.get("end_date")
    if bool(raw_start) != bool(raw_end):
        return jsonify({"error": "start_date and end_date must be given together"}), 400
    try:
        start_date = parse_iso_date(raw_start)
        end_date = parse_iso_date(raw_end)
    except ValueError:
        return jsonify({"error": "start_date and end_date must be ISO-8601 dates"}), 400
    if start_date and end_date and end_date < start_date:
        return jsonify({"error": "end_date must be on or after start_date", "field": "end_date"}), 400
    equipment_id = request.args.get("equipment_id", type=int)

    bookings = booking_service.list_calendar_bookings(
        g.org_id,
        start_date=start_date,
        end_date=end_date,
        equipment_id=equipment_id,
    )
    return jsonify({"events": [booking_service.calendar_event(b) for b in bookings]}), 200


@bookings_bp.get("/<int:booking_id>")
@require_auth
@require_permission("VIEW_BOOKINGS")
def get_booking_route(booking_id: int):
    """Single booking with items and its most recent stock movements."""
    try:
        return jsonify({"booking": booking_service.get_booking_detail(g.org_id, booking_id)}), 200
    except RentalError as e:
        return _error_response(e)


# =============================================================================
# CREATE
# =============================================================================

@bookings_bp.post("")
@require_auth
@require_permission("CREATE_BOOKING")
def create_booking_route():
    """
    Create a booking and reserve its stock atomically.

    Request body:
    {
        "customer_id": 1,
        "start_date": "2025-01-10",
        "end_date": "2025-01-12",
        "start_time": "08:00",          (optional)
        "end_time": "18:00",            (optional)
        "notes": "...",                 (optional)
        "status": "PENDING",            (optional, PENDING or CONFIRMED)
        "total_price_cents": 15000,     (optional override)
        "items": [
            {"equipment_id": 3, "quantity": 2, "unit_price_cents": 5000, "notes": "..."}
        ],
        "equipment_id": 3               (legacy single-equipment form, instead of items)
    }

    Returns:
        201: {"booking": {...}}
        400 / 403 / 404 / 409 per module docstring
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    body = dict(payload)
    raw_items = body.pop("items", None)

    try:
        patch = validate_payload(model=Booking, payload=body, policy=BOOKING_CREATE_POLICY, partial=False)
        items = _validate_items(raw_items)
        enforce_rules_booking_create(patch, items)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        booking = booking_service.create_booking(
            org_id=g.org_id,
            user_id=g.current_user.id,
            customer_id=patch["customer_id"],
            start_date=patch["start_date"],
            end_date=patch["end_date"],
            items=items,
            equipment_id=patch.get("equipment_id"),
            start_time=patch.get("start_time"),
            end_time=patch.get("end_time"),
            total_price_cents=patch.get("total_price_cents"),
            notes=patch.get("notes"),
            status=patch.get("status") or booking_service.BOOKING_STATUS_PENDING,
            customer_site_id=patch.get("customer_site_id"),
        )
        return jsonify({"booking": booking.to_dict()}), 201

    except RentalError as e:
        return _error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create booking")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# UPDATE / CANCEL
# =============================================================================

@bookings_bp.put("/<int:booking_id>")
@require_auth
@require_permission("EDIT_BOOKING")
def update_booking_route(booking_id: int):
    """
    Partial update: status, dates, times, price, notes, paid_at.

    Moving an active booking to COMPLETED or CANCELLED releases its stock.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        patch = validate_payload(model=Booking, payload=payload, policy=BOOKING_UPDATE_POLICY, partial=True)
        enforce_rules_booking_update(patch)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        booking = booking_service.update_booking(
            org_id=g.org_id,
            user_id=g.current_user.id,
            booking_id=booking_id,
            patch=patch,
        )
        return jsonify({"booking": booking.to_dict()}), 200

    except RentalError as e:
        return _error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.delete("/<int:booking_id>")
@require_auth
@require_permission("CANCEL_BOOKING")
def cancel_booking_route(booking_id: int):
    """
    Cancel a booking (idempotent).

    Cancelling an already-cancelled booking succeeds and changes nothing.
    """
    try:
        booking, changed = booking_service.cancel_booking(
            org_id=g.org_id,
            user_id=g.current_user.id,
            booking_id=booking_id,
        )
        return jsonify({
            "success": True,
            "changed": changed,
            "message": "Booking cancelled" if changed else "Booking already cancelled",
            "booking": booking.to_dict(),
        }), 200

    except RentalError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURNS
# =============================================================================

@bookings_bp.post("/<int:booking_id>/return")
@require_auth
@require_permission("PROCESS_RETURN")
def process_return_route(booking_id: int):
    """
    Record returned / damaged quantities.

    Request body:
    {
        "items": [
            {
                "booking_item_id": 7,
                "returned_qty": 3,
                "damaged_qty": 1,
                "damage_notes": "Cracked housing",   (optional)
                "repair_cost_cents": 15000           (optional)
            }
        ],
        "notes": "Returned by driver"                (optional)
    }

    Returns:
        200: {success, message, summary: {total_returned, total_damaged, completed}, booking}
    """
    payload = request.get_json(silent=True)
    try:
        items, notes = validate_return_payload(payload)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        booking, summary = return_service.process_return(
            org_id=g.org_id,
            user_id=g.current_user.id,
            booking_id=booking_id,
            items=items,
            notes=notes,
        )
        message = "Return processed"
        if summary.completed:
            message = "Return processed; booking completed"
        return jsonify({
            "success": True,
            "message": message,
            "summary": summary.to_dict(),
            "booking": booking.to_dict(),
        }), 200

    except RentalError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process return for booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>/return")
@require_auth
@require_permission("VIEW_BOOKINGS")
def return_status_route(booking_id: int):
    """Per-item returned/damaged/pending snapshot plus summary."""
    try:
        return jsonify(return_service.get_return_status(g.org_id, booking_id)), 200
    except RentalError as e:
        return _error_response(e)
