from __future__ import annotations

from ..extensions import db
from rentals.time_utils import to_utc_z


class Plan(db.Model):
    """
    Subscription tier.

    max_bookings_per_month = -1 means unlimited.
    """
    __tablename__ = "plans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    max_bookings_per_month = db.Column(db.Integer, nullable=False, default=-1)
    max_equipments = db.Column(db.Integer, nullable=False, default=-1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "max_bookings_per_month": self.max_bookings_per_month,
            "max_equipments": self.max_equipments,
            "is_active": self.is_active,
        }


class Organization(db.Model):
    """
    Multi-tenant root: every rental business is an Organization.

    All equipment, customers, bookings and stock movements carry org_id.
    No data may cross organization boundaries; every service lookup filters
    on (id, org_id) and treats a foreign row as not found.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code / storefront slug

    plan_id = db.Column(db.Integer, db.ForeignKey("plans.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    plan = db.relationship("Plan", backref=db.backref("organizations", lazy=True))

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "plan_id": self.plan_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
