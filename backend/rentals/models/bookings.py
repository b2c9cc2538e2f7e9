from __future__ import annotations

from ..extensions import db
from rentals.time_utils import to_utc_z, to_iso_date


class Booking(db.Model):
    """
    Rental order for one customer over a closed date range [start_date, end_date].

    LIFECYCLE:
        PENDING -> CONFIRMED -> COMPLETED
        PENDING / CONFIRMED -> CANCELLED
    COMPLETED and CANCELLED are terminal. Bookings are never deleted;
    cancellation is a status transition.

    LINE ITEMS: every booking created by this codebase owns >= 1 BookingItem.
    equipment_id is kept for legacy single-equipment rows; an item-less legacy
    booking counts as quantity 1 of that equipment.

    CONCURRENCY: version_id is an optimistic-lock counter, like
    Equipment.version_id. Every status or return write updates the booking row,
    so a writer that read a stale status fails its flush and is retried.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.UniqueConstraint("org_id", "booking_number", name="uq_bookings_org_number"),
        db.Index("ix_bookings_org_status", "org_id", "status"),
        db.Index("ix_bookings_period", "start_date", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    booking_number = db.Column(db.String(32), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_site_id = db.Column(db.Integer, nullable=True)

    # Legacy single-equipment bookings
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipments.id"), nullable=True, index=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=True)  # "HH:MM"
    end_time = db.Column(db.String(5), nullable=True)

    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    notes = db.Column(db.Text, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("bookings", lazy=True))
    equipment = db.relationship("Equipment")
    items = db.relationship(
        "BookingItem",
        backref="booking",
        lazy=True,
        order_by="BookingItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Booking id={self.id} number={self.booking_number!r} status={self.status}>"

    @property
    def is_active(self) -> bool:
        return self.status in ("PENDING", "CONFIRMED")

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "booking_number": self.booking_number,
            "customer_id": self.customer_id,
            "customer_site_id": self.customer_site_id,
            "equipment_id": self.equipment_id,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "total_price_cents": self.total_price_cents,
            "status": self.status,
            "notes": self.notes,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["customer"] = self.customer.to_dict() if self.customer else None
        return data


class BookingItem(db.Model):
    """
    One equipment line within a booking.

    INVARIANT: 0 <= returned_qty + damaged_qty <= quantity
    pending_qty = quantity - returned_qty - damaged_qty
    """
    __tablename__ = "booking_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_booking_items_quantity_pos"),
        db.CheckConstraint(
            "returned_qty >= 0 AND damaged_qty >= 0 AND returned_qty + damaged_qty <= quantity",
            name="ck_booking_items_return_bounds",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipments.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)  # price per unit per day
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    returned_qty = db.Column(db.Integer, nullable=False, default=0)
    damaged_qty = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    equipment = db.relationship("Equipment", backref=db.backref("booking_items", lazy="dynamic"))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def pending_qty(self) -> int:
        return self.quantity - self.returned_qty - self.damaged_qty

    @property
    def is_complete(self) -> bool:
        return self.returned_qty + self.damaged_qty >= self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "equipment_id": self.equipment_id,
            "equipment_name": self.equipment.name if self.equipment else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "returned_qty": self.returned_qty,
            "damaged_qty": self.damaged_qty,
            "pending_qty": self.pending_qty,
            "notes": self.notes,
        }
