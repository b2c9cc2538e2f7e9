# Overview: Domain error taxonomy shared by services and routes.

"""
Rental domain errors.

Each error carries the HTTP status the API surfaces it with. Services raise
them before (or in the middle of) a transaction; the enclosing transaction is
rolled back by run_with_retry so no stock mutation is ever partially applied.
"""

from __future__ import annotations


class RentalError(Exception):
    """Base class for business-rule violations."""

    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        payload.update(self.details)
        return payload


class NotFoundError(RentalError):
    """Customer, equipment or booking absent or owned by another tenant."""

    status_code = 404

    def __init__(self, resource: str, resource_id=None):
        message = f"{resource} not found" if resource_id is None else f"{resource} {resource_id} not found"
        super().__init__(message, resource=resource)
        self.resource = resource
        self.resource_id = resource_id


class StockConflictError(RentalError):
    """Requested quantity exceeds what is free (live or for the period)."""

    status_code = 409

    def __init__(self, message: str, *, equipment_id: int, requested: int, available: int):
        super().__init__(
            message,
            equipment_id=equipment_id,
            requested=requested,
            available=available,
        )
        self.equipment_id = equipment_id
        self.requested = requested
        self.available = available


class StockInvariantError(RentalError):
    """A counter mutation would break total = available + reserved + maintenance + damaged."""

    status_code = 409


class MovementNotAllowedError(RentalError):
    """Movement type that only the booking and return flows may record."""

    status_code = 400

    def __init__(self, message: str, *, movement_type: str):
        super().__init__(message, movement_type=movement_type)
        self.movement_type = movement_type


class InvalidStateTransitionError(RentalError):
    """Action attempted on a booking whose status does not allow it."""

    status_code = 400


class QuantityOverrunError(RentalError):
    """Returned + damaged quantity exceeds what is still pending on a line item."""

    status_code = 400

    def __init__(self, message: str, *, booking_item_id: int, submitted: int, pending: int):
        super().__init__(
            message,
            booking_item_id=booking_item_id,
            submitted=submitted,
            pending=pending,
        )


class PlanLimitExceededError(RentalError):
    """Tenant's subscription quota reached."""

    status_code = 403

    def __init__(self, message: str, *, limit_type: str, current: int, max: int, upgrade_url: str | None):
        super().__init__(
            message,
            limit_type=limit_type,
            current=current,
            max=max,
            upgrade_url=upgrade_url,
        )
