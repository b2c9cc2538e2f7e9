# Overview: Pytest coverage for the Flask CLI commands.

from rentals.extensions import db
from rentals.models import Equipment, User


def test_equipment_create_and_stock_check(app, db_session, org_a):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "equipment", "create", "--org-id", str(org_a.id), "--name", "Compactador",
        "--stock", "4", "--price-per-day", "3000",
    ])
    assert "PASS Created equipment: Compactador" in result.output
    assert db.session.query(Equipment).filter_by(name="Compactador").one().available_stock == 4

    result = runner.invoke(args=["equipment", "list", "--org-id", str(org_a.id)])
    assert "Compactador" in result.output

    result = runner.invoke(args=["stock", "check"])
    assert result.exit_code == 0
    assert "PASS 1 equipment row(s) consistent" in result.output


def test_stock_check_fails_on_drift(app, db_session, equipment_a):
    equipment_a.available_stock = 4
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["stock", "check"])
    assert result.exit_code == 1
    assert f"FAIL Equipment {equipment_a.id}" in result.output


def test_users_create(app, db_session, org_a):
    result = app.test_cli_runner().invoke(args=[
        "users", "create", "--org-id", str(org_a.id), "--username", "balcao",
        "--email", "balcao@acme.test", "--password", "Password123!", "--role", "operator",
    ])
    assert "PASS Created user: balcao" in result.output
    assert db.session.query(User).filter_by(username="balcao").one().role == "operator"


def test_unknown_org(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "equipment", "create", "--org-id", "999", "--name", "X",
    ])
    assert "FAIL Organization ID 999 not found" in result.output
