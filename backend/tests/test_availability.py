# Overview: Pytest coverage for period and live availability.

from rentals.services import availability_service, booking_service, return_service, stock_service

from conftest import d, insert_legacy_booking, reload_equipment


def _book(org, customer, equipment, start, end, qty, user=None):
    return booking_service.create_booking(
        org_id=org.id,
        user_id=user.id if user else None,
        customer_id=customer.id,
        start_date=d(start),
        end_date=d(end),
        items=[{"equipment_id": equipment.id, "quantity": qty}],
    )


class TestPeriodAvailability:

    def test_empty_period_has_full_capacity(self, db_session, equipment_a):
        result = availability_service.check_period_availability(
            equipment_a, d("2025-01-10"), d("2025-01-12"), 5
        )
        assert result.available
        assert result.capacity_for_period == 5
        assert result.reserved_in_period == 0
        assert result.available_for_period == 5

    def test_overlapping_booking_reduces_period_capacity(self, db_session, org_a, customer_a, equipment_a):
        _book(org_a, customer_a, equipment_a, "2025-01-10", "2025-01-12", 3)

        equipment = reload_equipment(equipment_a.id)
        result = availability_service.check_period_availability(
            equipment, d("2025-01-11"), d("2025-01-13"), 3
        )
        assert not result.available
        assert result.reserved_in_period == 3
        assert result.available_for_period == 2
        assert "available 2, requested 3" in result.message

    def test_adjacent_booking_does_not_count(self, db_session, org_a, customer_a, equipment_a):
        _book(org_a, customer_a, equipment_a, "2025-01-10", "2025-01-12", 3)

        equipment = reload_equipment(equipment_a.id)
        result = availability_service.check_period_availability(
            equipment, d("2025-01-13"), d("2025-01-15"), 2
        )
        assert result.available
        assert result.reserved_in_period == 0

    def test_cancelled_bookings_are_ignored(self, db_session, org_a, customer_a, equipment_a):
        booking = _book(org_a, customer_a, equipment_a, "2025-01-10", "2025-01-12", 3)
        booking_service.cancel_booking(org_id=org_a.id, user_id=None, booking_id=booking.id)

        equipment = reload_equipment(equipment_a.id)
        result = availability_service.check_period_availability(
            equipment, d("2025-01-10"), d("2025-01-12"), 5
        )
        assert result.available
        assert result.reserved_in_period == 0

    def test_exclude_booking_ignores_own_hold(self, db_session, org_a, customer_a, equipment_a):
        booking = _book(org_a, customer_a, equipment_a, "2025-01-10", "2025-01-12", 4)

        equipment = reload_equipment(equipment_a.id)
        result = availability_service.check_period_availability(
            equipment, d("2025-01-10"), d("2025-01-14"), 4, exclude_booking_id=booking.id
        )
        assert result.available
        assert result.reserved_in_period == 0

    def test_maintenance_and_damage_shrink_capacity(self, db_session, org_a, equipment_a):
        stock_service.record_movement(
            org_id=org_a.id, user_id=None, equipment_id=equipment_a.id,
            movement_type="MAINTENANCE_OUT", quantity=1, reason="service",
        )
        stock_service.record_movement(
            org_id=org_a.id, user_id=None, equipment_id=equipment_a.id,
            movement_type="DAMAGE", quantity=1, reason="dropped",
        )

        equipment = reload_equipment(equipment_a.id)
        result = availability_service.check_period_availability(
            equipment, d("2025-01-10"), d("2025-01-12"), 4
        )
        assert result.capacity_for_period == 3
        assert not result.available

    def test_legacy_booking_counts_as_one_unit(self, db_session, org_a, customer_a, equipment_a):
        insert_legacy_booking(org_a.id, customer_a.id, equipment_a.id, d("2025-01-10"), d("2025-01-12"))

        equipment = reload_equipment(equipment_a.id)
        result = availability_service.check_period_availability(
            equipment, d("2025-01-12"), d("2025-01-20"), 5
        )
        assert result.reserved_in_period == 1
        assert not result.available

    def test_inactive_equipment_is_never_available(self, db_session, equipment_a):
        equipment_a.status = "INACTIVE"
        result = availability_service.check_period_availability(
            equipment_a, d("2025-01-10"), d("2025-01-12"), 1
        )
        assert not result.available
        db_session.rollback()


class TestConflictsAndLookup:

    def test_conflicts_listed(self, db_session, org_a, customer_a, equipment_a):
        booking = _book(org_a, customer_a, equipment_a, "2025-01-10", "2025-01-12", 2)

        result = availability_service.check_availability(
            org_a.id, equipment_a.id, d("2025-01-12"), d("2025-01-14"), 4
        )
        assert not result.available
        assert [c["booking_id"] for c in result.conflicts] == [booking.id]
        assert result.conflicts[0]["quantity"] == 2

    def test_live_availability_uses_available_counter(self, db_session, equipment_a):
        assert availability_service.check_live_availability(equipment_a, 5)
        assert not availability_service.check_live_availability(equipment_a, 6)


class TestPartiallyReturnedBookings:

    def test_only_pending_units_hold_the_period(self, db_session, org_a, customer_a, equipment_a):
        booking = _book(org_a, customer_a, equipment_a, "2025-01-10", "2025-01-12", 4)
        return_service.process_return(
            org_id=org_a.id,
            user_id=None,
            booking_id=booking.id,
            items=[{"booking_item_id": booking.items[0].id, "returned_qty": 2, "damaged_qty": 1}],
        )

        equipment = reload_equipment(equipment_a.id)
        assert (equipment.available_stock, equipment.reserved_stock, equipment.damaged_stock) == (3, 1, 1)

        result = availability_service.check_availability(
            org_a.id, equipment_a.id, d("2025-01-10"), d("2025-01-12"), 3
        )
        assert result.capacity_for_period == 4
        assert result.reserved_in_period == 1
        assert result.available_for_period == 3
        assert result.available
        assert result.conflicts[0]["quantity"] == 1

    def test_fully_accounted_units_free_the_period(self, db_session, org_a, customer_a, equipment_a):
        booking = _book(org_a, customer_a, equipment_a, "2025-01-10", "2025-01-12", 2)
        _book(org_a, customer_a, equipment_a, "2025-01-10", "2025-01-12", 1)
        return_service.process_return(
            org_id=org_a.id,
            user_id=None,
            booking_id=booking.id,
            items=[{"booking_item_id": booking.items[0].id, "returned_qty": 1, "damaged_qty": 0}],
        )

        # 5 total: 1 pending on the first booking, 1 on the second
        equipment = reload_equipment(equipment_a.id)
        result = availability_service.check_period_availability(
            equipment, d("2025-01-11"), d("2025-01-11"), 3
        )
        assert result.reserved_in_period == 2
        assert result.available
