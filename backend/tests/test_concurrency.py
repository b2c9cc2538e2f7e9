# Overview: Threaded concurrency tests for stock reservation and release.

"""
Concurrent bookings against a file-backed SQLite database.

Each worker thread runs in its own application context (and so its own
session), the same way concurrent requests do.

The release races hold every worker at a barrier right after it has loaded
the booking, so all of them start from the same stale PENDING snapshot
before any one of them writes.
"""

import threading

import pytest

from rentals import create_app
from rentals.extensions import db
from rentals.errors import InvalidStateTransitionError, QuantityOverrunError, StockConflictError
from rentals.models import Booking, BookingItem, Equipment, StockMovement
from rentals.services import booking_service, catalog_service, return_service, tenant_service
from rentals.services.stock_service import find_invariant_violations

from conftest import d


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'concurrency.db'}",
        "DB_RETRY_ATTEMPTS": 10,
    })

    with app.app_context():
        db.create_all()
        org = tenant_service.create_organization("Concurrency Rentals", "CONC")
        customer = catalog_service.create_customer(org_id=org.id, name="Cliente")
        equipment = catalog_service.create_equipment(
            org_id=org.id, name="Plataforma", total_stock=2, price_per_day_cents=1000
        )
        ids = {"org_id": org.id, "customer_id": customer.id, "equipment_id": equipment.id}

    yield app, ids

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def two_bookings(file_app):
    """Bookings X and Y holding 2 units each of a 4-unit equipment."""
    app, ids = file_app

    with app.app_context():
        equipment = catalog_service.create_equipment(
            org_id=ids["org_id"], name="Gerador 5kVA", total_stock=4, price_per_day_cents=3000
        )
        bookings = [
            booking_service.create_booking(
                org_id=ids["org_id"],
                user_id=None,
                customer_id=ids["customer_id"],
                start_date=d("2025-02-01"),
                end_date=d("2025-02-05"),
                items=[{"equipment_id": equipment.id, "quantity": 2}],
            )
            for _ in range(2)
        ]
        ids = dict(
            ids,
            shared_equipment_id=equipment.id,
            x_id=bookings[0].id,
            x_item_id=bookings[0].items[0].id,
            y_id=bookings[1].id,
        )

    return app, ids


def _run_each(app, targets):
    results = []
    errors = []
    lock = threading.Lock()

    def worker(target):
        with app.app_context():
            try:
                value = target()
                with lock:
                    results.append(value)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(t,)) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def _run_workers(app, count, target):
    return _run_each(app, [target] * count)


def _hold_after_first_load(monkeypatch, parties, *modules):
    """Make each thread's first booking load wait until every thread has loaded."""
    barrier = threading.Barrier(parties)
    seen = threading.local()
    real = booking_service.get_booking_for_update

    def load_then_wait(org_id, booking_id):
        booking = real(org_id, booking_id)
        if not getattr(seen, "loaded", False):
            seen.loaded = True
            list(booking.items)
            barrier.wait(timeout=10)
        return booking

    for module in modules:
        monkeypatch.setattr(module, "get_booking_for_update", load_then_wait)


def _assert_y_untouched(ids):
    booking_y = db.session.get(Booking, ids["y_id"])
    assert booking_y.status == "PENDING"
    assert booking_y.items[0].pending_qty == 2
    assert db.session.query(StockMovement).filter(
        StockMovement.booking_id == ids["y_id"],
        StockMovement.type != "RENTAL_OUT",
    ).count() == 0


def test_last_units_go_to_exactly_as_many_bookings(file_app):
    app, ids = file_app

    def book_one():
        booking = booking_service.create_booking(
            org_id=ids["org_id"],
            user_id=None,
            customer_id=ids["customer_id"],
            start_date=d("2025-01-10"),
            end_date=d("2025-01-12"),
            items=[{"equipment_id": ids["equipment_id"], "quantity": 1}],
        )
        return booking.booking_number

    numbers, errors = _run_workers(app, 5, book_one)

    assert len(numbers) == 2
    assert len(set(numbers)) == 2
    assert len(errors) == 3
    assert all(isinstance(e, StockConflictError) for e in errors), errors

    with app.app_context():
        equipment = db.session.get(Equipment, ids["equipment_id"])
        assert equipment.available_stock == 0
        assert equipment.reserved_stock == 2
        assert db.session.query(Booking).count() == 2
        assert db.session.query(StockMovement).filter_by(type="RENTAL_OUT").count() == 2
        assert find_invariant_violations() == []


def test_concurrent_cancel_releases_only_its_own_units(two_bookings, monkeypatch):
    app, ids = two_bookings
    _hold_after_first_load(monkeypatch, 6, booking_service)

    def cancel_x():
        _, changed = booking_service.cancel_booking(
            org_id=ids["org_id"], user_id=None, booking_id=ids["x_id"]
        )
        return changed

    changed, errors = _run_workers(app, 6, cancel_x)

    assert not errors, errors
    assert sorted(changed) == [False] * 5 + [True]

    with app.app_context():
        equipment = db.session.get(Equipment, ids["shared_equipment_id"])
        assert (equipment.available_stock, equipment.reserved_stock) == (2, 2)
        assert db.session.query(StockMovement).filter_by(
            booking_id=ids["x_id"], type="ADJUSTMENT"
        ).count() == 1
        assert db.session.get(Booking, ids["x_id"]).status == "CANCELLED"
        _assert_y_untouched(ids)
        assert find_invariant_violations() == []


def test_concurrent_complete_returns_units_once(two_bookings, monkeypatch):
    app, ids = two_bookings
    _hold_after_first_load(monkeypatch, 4, booking_service)

    def complete_x():
        booking = booking_service.update_booking(
            org_id=ids["org_id"], user_id=None, booking_id=ids["x_id"], patch={"status": "COMPLETED"}
        )
        return booking.status

    statuses, errors = _run_workers(app, 4, complete_x)

    assert not errors, errors
    assert statuses == ["COMPLETED"] * 4

    with app.app_context():
        equipment = db.session.get(Equipment, ids["shared_equipment_id"])
        assert (equipment.available_stock, equipment.reserved_stock) == (2, 2)
        assert db.session.query(StockMovement).filter_by(
            booking_id=ids["x_id"], type="RENTAL_RETURN"
        ).count() == 1
        assert db.session.get(BookingItem, ids["x_item_id"]).returned_qty == 2
        _assert_y_untouched(ids)
        assert find_invariant_violations() == []


def test_cancel_racing_complete_releases_once(two_bookings, monkeypatch):
    app, ids = two_bookings
    _hold_after_first_load(monkeypatch, 2, booking_service)

    def cancel_x():
        booking, _ = booking_service.cancel_booking(
            org_id=ids["org_id"], user_id=None, booking_id=ids["x_id"]
        )
        return booking.status

    def complete_x():
        booking = booking_service.update_booking(
            org_id=ids["org_id"], user_id=None, booking_id=ids["x_id"], patch={"status": "COMPLETED"}
        )
        return booking.status

    statuses, errors = _run_each(app, [cancel_x, complete_x])

    assert len(statuses) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], InvalidStateTransitionError)

    with app.app_context():
        equipment = db.session.get(Equipment, ids["shared_equipment_id"])
        assert (equipment.available_stock, equipment.reserved_stock) == (2, 2)
        releases = db.session.query(StockMovement).filter(
            StockMovement.booking_id == ids["x_id"],
            StockMovement.type.in_(["ADJUSTMENT", "RENTAL_RETURN"]),
        ).all()
        assert len(releases) == 1
        assert db.session.get(Booking, ids["x_id"]).status == statuses[0]
        _assert_y_untouched(ids)
        assert find_invariant_violations() == []


def test_concurrent_returns_never_exceed_quantity(two_bookings, monkeypatch):
    app, ids = two_bookings
    _hold_after_first_load(monkeypatch, 3, booking_service, return_service)

    def return_one():
        _, summary = return_service.process_return(
            org_id=ids["org_id"],
            user_id=None,
            booking_id=ids["x_id"],
            items=[{"booking_item_id": ids["x_item_id"], "returned_qty": 1, "damaged_qty": 0}],
        )
        return summary.total_returned

    returned, errors = _run_workers(app, 3, return_one)

    assert returned == [1, 1]
    assert len(errors) == 1
    assert isinstance(errors[0], (InvalidStateTransitionError, QuantityOverrunError)), errors

    with app.app_context():
        item = db.session.get(BookingItem, ids["x_item_id"])
        assert (item.returned_qty, item.damaged_qty) == (2, 0)
        assert db.session.get(Booking, ids["x_id"]).status == "COMPLETED"
        equipment = db.session.get(Equipment, ids["shared_equipment_id"])
        assert (equipment.available_stock, equipment.reserved_stock) == (2, 2)
        assert db.session.query(StockMovement).filter_by(
            booking_id=ids["x_id"], type="RENTAL_RETURN"
        ).count() == 2
        _assert_y_untouched(ids)
        assert find_invariant_violations() == []
