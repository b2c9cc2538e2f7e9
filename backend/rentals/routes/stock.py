# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

# backend/rentals/routes/stock.py
"""
Stock API Routes

MULTI-TENANT: All routes are scoped to g.org_id.

SECURITY:
- Reads require VIEW_STOCK
- Manual movements and total-stock adjustments require ADJUST_STOCK
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import StockMovement
from ..services import stock_service
from ..services import availability_service
from ..errors import RentalError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_stock_movement,
    validate_stock_adjustment,
    ValidationError,
    MOVEMENT_TYPES,
)
from rentals.time_utils import parse_iso_date
from ..decorators import require_auth, require_permission


STOCK_MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"type", "quantity", "reason", "booking_id"},
    required_on_create={"type", "quantity"},
)


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
@require_permission("VIEW_STOCK")
def stock_overview_route():
    """Counters for every equipment of the organization, plus totals."""
    return jsonify(stock_service.get_stock_overview(g.org_id)), 200


@stock_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_STOCK")
def low_stock_route():
    """Active equipment with available_stock <= min_stock_level, classified."""
    return jsonify(stock_service.list_low_stock(g.org_id)), 200


@stock_bp.get("/alerts")
@require_auth
@require_permission("VIEW_STOCK")
def stock_alerts_route():
    """Out-of-stock, low-stock, damaged and maintenance alerts with a summary."""
    return jsonify(stock_service.list_stock_alerts(g.org_id)), 200


@stock_bp.get("/<int:equipment_id>")
@require_auth
@require_permission("VIEW_STOCK")
def stock_detail_route(equipment_id: int):
    try:
        return jsonify(stock_service.get_stock_detail(g.org_id, equipment_id)), 200
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.get("/<int:equipment_id>/availability")
@require_auth
@require_permission("VIEW_STOCK")
def availability_route(equipment_id: int):
    """
    Period availability for an equipment.

    Query params:
    - start_date, end_date: YYYY-MM-DD (required)
    - quantity: int (default 1)
    - exclude_booking_id: int (optional) - ignore this booking's own hold
    """
    try:
        start_date = parse_iso_date(request.args.get("start_date"))
        end_date = parse_iso_date(request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "start_date and end_date must be ISO-8601 dates"}), 400
    if not start_date or not end_date:
        return jsonify({"error": "start_date and end_date required"}), 400
    if end_date < start_date:
        return jsonify({"error": "end_date must be on or after start_date", "field": "end_date"}), 400

    quantity = request.args.get("quantity", default=1, type=int)
    if quantity is None or quantity <= 0:
        return jsonify({"error": "quantity must be > 0", "field": "quantity"}), 400
    exclude_booking_id = request.args.get("exclude_booking_id", type=int)

    try:
        result = availability_service.check_availability(
            g.org_id,
            equipment_id,
            start_date,
            end_date,
            quantity,
            exclude_booking_id=exclude_booking_id,
        )
        return jsonify(result.to_dict()), 200
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.get("/<int:equipment_id>/movements")
@require_auth
@require_permission("VIEW_STOCK")
def movements_route(equipment_id: int):
    """
    Movement history, newest first.

    Query params:
    - type: movement type filter (optional)
    - limit: int (default 50, max 500)
    """
    movement_type = request.args.get("type")
    if movement_type and movement_type not in MOVEMENT_TYPES:
        return jsonify({"error": f"Invalid movement type: {movement_type}"}), 400
    limit = min(max(request.args.get("limit", default=50, type=int) or 50, 1), 500)

    try:
        movements = stock_service.list_movements(
            g.org_id, equipment_id, movement_type=movement_type, limit=limit
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.post("/<int:equipment_id>/movement")
@require_auth
@require_permission("ADJUST_STOCK")
def record_movement_route(equipment_id: int):
    """
    Record a manual stock movement.

    Request body:
    {
        "type": "MAINTENANCE_OUT",
        "quantity": 2,
        "reason": "Annual service",   (optional)
        "booking_id": 12              (optional)
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=StockMovement, payload=payload, policy=STOCK_MOVEMENT_POLICY, partial=False)
        enforce_rules_stock_movement(patch)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        movement, equipment = stock_service.record_movement(
            org_id=g.org_id,
            user_id=g.current_user.id,
            equipment_id=equipment_id,
            movement_type=patch["type"],
            quantity=patch["quantity"],
            reason=patch.get("reason"),
            booking_id=patch.get("booking_id"),
        )
        return jsonify({
            "success": True,
            "movement": movement.to_dict(),
            "equipment": equipment.to_dict(),
        }), 201

    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement for equipment %s", equipment_id)
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.put("/<int:equipment_id>/adjust")
@require_auth
@require_permission("ADJUST_STOCK")
def adjust_total_route(equipment_id: int):
    """
    Set total stock.

    Request body: {"new_total_stock": 12, "reason": "Inventory count"}
    """
    try:
        new_total, reason = validate_stock_adjustment(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        movement, equipment = stock_service.set_total_stock(
            org_id=g.org_id,
            user_id=g.current_user.id,
            equipment_id=equipment_id,
            new_total=new_total,
            reason=reason,
        )
        return jsonify({
            "success": True,
            "movement": movement.to_dict() if movement else None,
            "equipment": equipment.to_dict(),
        }), 200

    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock for equipment %s", equipment_id)
        return jsonify({"error": "Internal server error"}), 500
