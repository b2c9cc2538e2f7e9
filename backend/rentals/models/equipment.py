from __future__ import annotations

from ..extensions import db
from rentals.time_utils import to_utc_z


class Equipment(db.Model):
    """
    Rentable equipment type tracked by quantity (not individual units).

    STOCK COUNTERS (authoritative, mutated only by stock_ledger_service):
        total_stock = available_stock + reserved_stock + maintenance_stock + damaged_stock

    - available_stock: free to reserve right now
    - reserved_stock: allocated to PENDING/CONFIRMED bookings (out on rent)
    - maintenance_stock: pulled out of rotation
    - damaged_stock: returned damaged, awaiting repair or write-off

    CONCURRENCY: version_id is an optimistic-lock counter. A writer that read
    the row before another writer committed gets StaleDataError on flush and is
    retried by run_with_retry, so two bookings can never both take the last unit
    even on databases that ignore SELECT ... FOR UPDATE.
    """
    __tablename__ = "equipments"
    __table_args__ = (
        db.Index("ix_equipments_org_name", "org_id", "name"),
        db.Index("ix_equipments_org_status", "org_id", "status"),
        db.CheckConstraint("available_stock >= 0", name="ck_equipments_available_nonneg"),
        db.CheckConstraint("reserved_stock >= 0", name="ck_equipments_reserved_nonneg"),
        db.CheckConstraint("maintenance_stock >= 0", name="ck_equipments_maintenance_nonneg"),
        db.CheckConstraint("damaged_stock >= 0", name="ck_equipments_damaged_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)

    price_per_day_cents = db.Column(db.Integer, nullable=False, default=0)
    price_per_hour_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE / INACTIVE

    total_stock = db.Column(db.Integer, nullable=False, default=0)
    available_stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    maintenance_stock = db.Column(db.Integer, nullable=False, default=0)
    damaged_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("equipments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Equipment id={self.id} name={self.name!r} total={self.total_stock} "
            f"available={self.available_stock} reserved={self.reserved_stock}>"
        )

    @property
    def is_low_stock(self) -> bool:
        return self.available_stock <= self.min_stock_level

    def stock_dict(self) -> dict:
        return {
            "total_stock": self.total_stock,
            "available_stock": self.available_stock,
            "reserved_stock": self.reserved_stock,
            "maintenance_stock": self.maintenance_stock,
            "damaged_stock": self.damaged_stock,
            "min_stock_level": self.min_stock_level,
        }

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "category": self.category,
            "price_per_day_cents": self.price_per_day_cents,
            "price_per_hour_cents": self.price_per_hour_cents,
            "status": self.status,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        data.update(self.stock_dict())
        return data


class StockMovement(db.Model):
    """
    Append-only audit row for one change to an equipment's counters.

    previous_stock / new_stock snapshot the counter the movement affects
    (available for rentals/adjustments, damaged for DAMAGE, ...). They are
    audit metadata; correctness comes from the counter update in the same
    transaction.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_equipment_occurred", "equipment_id", "occurred_at"),
        db.Index("ix_stock_movements_org_type", "org_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipments.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(500), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    equipment = db.relationship("Equipment", backref=db.backref("stock_movements", lazy="dynamic"))
    booking = db.relationship("Booking", backref=db.backref("stock_movements", lazy="dynamic"))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "equipment_id": self.equipment_id,
            "booking_id": self.booking_id,
            "booking_number": self.booking.booking_number if self.booking else None,
            "user_id": self.user_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class EquipmentCost(db.Model):
    """Cost booked against an equipment (repairs recorded by the return flow)."""
    __tablename__ = "equipment_costs"
    __table_args__ = (
        db.Index("ix_equipment_costs_equipment_date", "equipment_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipments.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)

    type = db.Column(db.String(32), nullable=False, default="REPAIR")
    description = db.Column(db.String(500), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    equipment = db.relationship("Equipment", backref=db.backref("costs", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "equipment_id": self.equipment_id,
            "booking_id": self.booking_id,
            "type": self.type,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "date": to_utc_z(self.date),
        }
