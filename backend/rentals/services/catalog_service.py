# Overview: Minimal catalog management (customers and equipment).

from __future__ import annotations

from ..extensions import db
from ..models import Customer, Equipment
from . import stock_ledger_service as ledger


def create_customer(
    *,
    org_id: int,
    name: str,
    email: str | None = None,
    phone: str | None = None,
    document: str | None = None,
) -> Customer:
    customer = Customer(org_id=org_id, name=name, email=email, phone=phone, document=document)
    db.session.add(customer)
    db.session.commit()
    return customer


def create_equipment(
    *,
    org_id: int,
    name: str,
    total_stock: int = 0,
    price_per_day_cents: int = 0,
    price_per_hour_cents: int | None = None,
    category: str | None = None,
    min_stock_level: int = 0,
) -> Equipment:
    """
    Create an equipment type with all of `total_stock` available.

    Stock enters the books as a PURCHASE movement through the ledger.
    """
    if total_stock < 0:
        raise ValueError("total_stock cannot be negative")

    equipment = Equipment(
        org_id=org_id,
        name=name,
        category=category,
        price_per_day_cents=price_per_day_cents,
        price_per_hour_cents=price_per_hour_cents,
        min_stock_level=min_stock_level,
        status="ACTIVE",
        total_stock=0,
        available_stock=0,
        reserved_stock=0,
        maintenance_stock=0,
        damaged_stock=0,
    )
    db.session.add(equipment)
    db.session.flush()

    if total_stock:
        ledger.adjust(
            equipment,
            {"total_stock": total_stock, "available_stock": total_stock},
            movement_type=ledger.PURCHASE,
            quantity=total_stock,
            user_id=None,
            reason="Initial stock",
        )

    db.session.commit()
    return equipment


def list_equipment(org_id: int) -> list[Equipment]:
    return (
        db.session.query(Equipment)
        .filter(Equipment.org_id == org_id)
        .order_by(Equipment.name)
        .all()
    )
