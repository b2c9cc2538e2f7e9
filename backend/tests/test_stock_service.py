# Overview: Pytest coverage for manual stock movements and stock read models.

import pytest

from rentals.extensions import db
from rentals.errors import MovementNotAllowedError, NotFoundError, StockConflictError
from rentals.models import Equipment
from rentals.services import booking_service, stock_service, catalog_service

from conftest import d, reload_equipment


def _move(org, equipment, movement_type, quantity, reason="test"):
    return stock_service.record_movement(
        org_id=org.id,
        user_id=None,
        equipment_id=equipment.id,
        movement_type=movement_type,
        quantity=quantity,
        reason=reason,
    )


class TestManualMovements:

    @pytest.mark.parametrize(
        "movement_type,quantity,expected",
        [
            ("PURCHASE", 2, {"total_stock": 7, "available_stock": 7}),
            ("LOSS", 2, {"total_stock": 3, "available_stock": 3}),
            ("MAINTENANCE_OUT", 2, {"available_stock": 3, "maintenance_stock": 2}),
            ("DAMAGE", 1, {"available_stock": 4, "damaged_stock": 1}),
            ("ADJUSTMENT", -2, {"total_stock": 3, "available_stock": 3}),
        ],
    )
    def test_counter_effects(self, db_session, org_a, equipment_a, movement_type, quantity, expected):
        movement, _ = _move(org_a, equipment_a, movement_type, quantity)

        equipment = reload_equipment(equipment_a.id)
        for field, value in expected.items():
            assert getattr(equipment, field) == value
        assert movement.type == movement_type
        assert movement.quantity == abs(quantity)

    def test_maintenance_round_trip(self, db_session, org_a, equipment_a):
        _move(org_a, equipment_a, "MAINTENANCE_OUT", 2)
        movement, _ = _move(org_a, equipment_a, "MAINTENANCE_IN", 2)

        equipment = reload_equipment(equipment_a.id)
        assert equipment.available_stock == 5
        assert equipment.maintenance_stock == 0
        assert (movement.previous_stock, movement.new_stock) == (2, 0)

    def test_repair_returns_damaged_units(self, db_session, org_a, equipment_a):
        _move(org_a, equipment_a, "DAMAGE", 2)
        _move(org_a, equipment_a, "REPAIR", 1)

        equipment = reload_equipment(equipment_a.id)
        assert equipment.damaged_stock == 1
        assert equipment.available_stock == 4

    def test_insufficient_source_counter(self, db_session, org_a, equipment_a):
        with pytest.raises(StockConflictError):
            _move(org_a, equipment_a, "MAINTENANCE_IN", 1)
        with pytest.raises(StockConflictError):
            _move(org_a, equipment_a, "LOSS", 6)
        assert reload_equipment(equipment_a.id).total_stock == 5

    def test_damage_never_takes_booked_units(self, db_session, org_a, customer_a, equipment_a):
        booking = booking_service.create_booking(
            org_id=org_a.id, user_id=None, customer_id=customer_a.id,
            start_date=d("2025-01-10"), end_date=d("2025-01-12"),
            items=[{"equipment_id": equipment_a.id, "quantity": 4}],
        )
        with pytest.raises(StockConflictError) as exc_info:
            _move(org_a, equipment_a, "DAMAGE", 2)
        assert exc_info.value.available == 1

        equipment = reload_equipment(equipment_a.id)
        assert (equipment.available_stock, equipment.reserved_stock, equipment.damaged_stock) == (1, 4, 0)

        # the booking still owns all 4 units and can release them
        _, changed = booking_service.cancel_booking(org_id=org_a.id, user_id=None, booking_id=booking.id)
        assert changed
        equipment = reload_equipment(equipment_a.id)
        assert (equipment.available_stock, equipment.reserved_stock) == (5, 0)

    @pytest.mark.parametrize("movement_type", ["RENTAL_OUT", "RENTAL_RETURN"])
    def test_booking_movements_are_not_manual(self, db_session, org_a, customer_a, equipment_a, movement_type):
        booking_service.create_booking(
            org_id=org_a.id, user_id=None, customer_id=customer_a.id,
            start_date=d("2025-01-10"), end_date=d("2025-01-12"),
            items=[{"equipment_id": equipment_a.id, "quantity": 2}],
        )
        with pytest.raises(MovementNotAllowedError) as exc_info:
            _move(org_a, equipment_a, movement_type, 1)
        assert exc_info.value.movement_type == movement_type

        equipment = reload_equipment(equipment_a.id)
        assert (equipment.available_stock, equipment.reserved_stock) == (3, 2)

    def test_other_tenant_equipment(self, db_session, org_b, equipment_a):
        with pytest.raises(NotFoundError):
            _move(org_b, equipment_a, "PURCHASE", 1)


class TestSetTotalStock:

    def test_increase(self, db_session, org_a, equipment_a):
        movement, equipment = stock_service.set_total_stock(
            org_id=org_a.id, user_id=None, equipment_id=equipment_a.id, new_total=8, reason="Contagem"
        )
        assert equipment.total_stock == 8
        assert equipment.available_stock == 8
        assert movement.type == "ADJUSTMENT"
        assert movement.quantity == 3
        assert "increased from 5 to 8" in movement.reason

    def test_unchanged_total_writes_nothing(self, db_session, org_a, equipment_a):
        movement, equipment = stock_service.set_total_stock(
            org_id=org_a.id, user_id=None, equipment_id=equipment_a.id, new_total=5, reason="Contagem"
        )
        assert movement is None
        assert equipment.total_stock == 5

    def test_cannot_go_below_committed(self, db_session, org_a, customer_a, equipment_a):
        booking_service.create_booking(
            org_id=org_a.id, user_id=None, customer_id=customer_a.id,
            start_date=d("2025-01-10"), end_date=d("2025-01-12"),
            items=[{"equipment_id": equipment_a.id, "quantity": 3}],
        )
        with pytest.raises(StockConflictError):
            stock_service.set_total_stock(
                org_id=org_a.id, user_id=None, equipment_id=equipment_a.id, new_total=2, reason="Perda"
            )

        movement, equipment = stock_service.set_total_stock(
            org_id=org_a.id, user_id=None, equipment_id=equipment_a.id, new_total=3, reason="Perda"
        )
        assert equipment.available_stock == 0
        assert equipment.reserved_stock == 3


class TestStockReads:

    def test_low_stock_classification(self, db_session, org_a):
        catalog_service.create_equipment(org_id=org_a.id, name="Vazio", total_stock=0, min_stock_level=2)
        catalog_service.create_equipment(org_id=org_a.id, name="Critico", total_stock=1, min_stock_level=4)
        catalog_service.create_equipment(org_id=org_a.id, name="Baixo", total_stock=3, min_stock_level=4)
        catalog_service.create_equipment(org_id=org_a.id, name="Ok", total_stock=10, min_stock_level=4)

        result = stock_service.list_low_stock(org_a.id)
        levels = {row["name"]: row["alert_level"] for row in result["equipments"]}
        assert levels == {"Vazio": "OUT_OF_STOCK", "Critico": "CRITICAL", "Baixo": "LOW"}
        assert result["stats"] == {"out_of_stock": 1, "critical": 1, "low": 1, "total": 3}

    def test_alerts_sorted_by_severity(self, db_session, org_a):
        catalog_service.create_equipment(org_id=org_a.id, name="Vazio", total_stock=0, min_stock_level=2)
        baixo = catalog_service.create_equipment(org_id=org_a.id, name="Baixo", total_stock=6, min_stock_level=4)
        _move(org_a, baixo, "DAMAGE", 1)
        _move(org_a, baixo, "MAINTENANCE_OUT", 2)
        catalog_service.create_equipment(org_id=org_a.id, name="Ok", total_stock=10, min_stock_level=4)
        inativo = catalog_service.create_equipment(org_id=org_a.id, name="Inativo", total_stock=0)
        inativo.status = "INACTIVE"
        db.session.commit()

        result = stock_service.list_stock_alerts(org_a.id)

        assert [(a["type"], a["equipment"]["name"]) for a in result["alerts"]] == [
            ("OUT_OF_STOCK", "Vazio"),
            ("LOW_STOCK", "Baixo"),
            ("DAMAGED", "Baixo"),
            ("MAINTENANCE", "Baixo"),
        ]
        assert [a["severity"] for a in result["alerts"]] == ["critical", "warning", "warning", "info"]
        assert result["alerts"][0]["id"] == f"out-{result['alerts'][0]['equipment']['id']}"
        assert result["alerts"][1]["details"] == {"available_stock": 3, "min_stock_level": 4}
        assert result["summary"] == {
            "total_alerts": 4,
            "low_stock_count": 1,
            "out_of_stock_count": 1,
            "damaged_count": 1,
            "in_maintenance_count": 1,
        }

    def test_alerts_are_tenant_scoped(self, db_session, org_a, org_b, equipment_a, equipment_b):
        _move(org_a, equipment_a, "DAMAGE", 1)

        assert [a["id"] for a in stock_service.list_stock_alerts(org_a.id)["alerts"]] == [f"dmg-{equipment_a.id}"]
        assert stock_service.list_stock_alerts(org_b.id)["alerts"] == []

    def test_detail_reports_active_items_and_utilization(self, db_session, org_a, customer_a, equipment_a):
        booking = booking_service.create_booking(
            org_id=org_a.id, user_id=None, customer_id=customer_a.id,
            start_date=d("2025-01-10"), end_date=d("2025-01-12"),
            items=[{"equipment_id": equipment_a.id, "quantity": 2}],
        )
        detail = stock_service.get_stock_detail(org_a.id, equipment_a.id)

        assert detail["metrics"]["utilization_rate"] == 40.0
        assert [i["booking_number"] for i in detail["active_booking_items"]] == [booking.booking_number]
        assert detail["recent_movements"][0]["type"] == "RENTAL_OUT"

    def test_movement_history_filter(self, db_session, org_a, equipment_a):
        _move(org_a, equipment_a, "MAINTENANCE_OUT", 1)
        _move(org_a, equipment_a, "MAINTENANCE_IN", 1)

        movements = stock_service.list_movements(org_a.id, equipment_a.id, movement_type="MAINTENANCE_IN")
        assert [m.type for m in movements] == ["MAINTENANCE_IN"]
        assert len(stock_service.list_movements(org_a.id, equipment_a.id)) == 3

    def test_invariant_scan(self, db_session, org_a, equipment_a):
        assert stock_service.find_invariant_violations() == []

        db.session.query(Equipment).filter_by(id=equipment_a.id).update(
            {"available_stock": 4}, synchronize_session=False
        )
        db.session.commit()
        assert [e.id for e in stock_service.find_invariant_violations(org_a.id)] == [equipment_a.id]
