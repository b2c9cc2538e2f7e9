# backend/rentals/routes/system.py
"""
System health endpoint.

Unauthenticated; reports database reachability and whether the stock
counters of every equipment row still add up.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Organization, Equipment, Booking
from ..services import stock_service

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "organizations": db.session.query(Organization).count(),
            "equipments": db.session.query(Equipment).count(),
            "bookings": db.session.query(Booking).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_stock_health() -> dict:
    try:
        violations = stock_service.find_invariant_violations()
    except SQLAlchemyError:
        current_app.logger.exception("Stock health check failed")
        return {"status": "unhealthy", "error": "Database error"}
    return {
        "status": "healthy" if not violations else "degraded",
        "invariant_violations": [e.id for e in violations],
    }


@system_bp.get("/health")
def health():
    database = check_database_health()
    stock = check_stock_health()
    ok = database["status"] == "healthy" and stock["status"] == "healthy"
    return jsonify({
        "status": "healthy" if ok else "unhealthy",
        "checks": {"database": database, "stock": stock},
    }), 200 if ok else 503
