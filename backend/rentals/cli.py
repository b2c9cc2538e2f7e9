# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/rentals/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"]
#   Idempotent bootstrap: creates tables, default plan, org and users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Rentals" --code "ACME"
#
# Users:
# - python -m flask users create --org-id 1 --username op --email op@rentals.local --password "Password123!" --role operator
#
# Equipment / stock:
# - python -m flask equipment create --org-id 1 --name "Scaffold tower" --stock 10 --price-per-day 4500
# - python -m flask equipment list --org-id 1
# - python -m flask stock check
#   Verify total = available + reserved + maintenance + damaged on every row.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, User, Equipment
from .services.auth_service import create_user, PasswordValidationError
from .services import tenant_service
from .services import catalog_service
from .services import stock_service


DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Rentals', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Initialize the system: tables, default plan, organization and users.

    Creates users admin / manager / operator (password "Password123!").

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing rental system...")
    db.create_all()

    org = db.session.query(Organization).first()
    if not org:
        org = tenant_service.create_organization(org_name, org_code)
        click.echo(f"PASS Created default organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    for role in ("admin", "manager", "operator"):
        existing = db.session.query(User).filter_by(org_id=org.id, username=role).first()
        if existing:
            click.echo(f"PASS User exists: {role}")
            continue
        create_user(role, f"{role}@rentals.local", DEFAULT_PASSWORD, org.id, role=role)
        click.echo(f"PASS Created user: {role} / {DEFAULT_PASSWORD}")

    click.echo("DONE System initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# ORGANIZATIONS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = tenant_service.list_organizations()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Plan':<12} {'Users'}")
    click.echo("="*80)

    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        plan_name = org.plan.name if org.plan else "-"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {plan_name:<12} {user_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant) on the default plan."""
    try:
        org = tenant_service.create_organization(name, code)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True)
@click.option('--username', required=True)
@click.option('--email', required=True)
@click.option('--password', prompt=True, hide_input=True)
@click.option('--role', type=click.Choice(['admin', 'manager', 'operator']), default='operator', show_default=True)
@with_appcontext
def create_user_cli(org_id, username, email, password, role):
    """Create a user in an organization."""
    try:
        user = create_user(username, email, password, org_id, role=role)
    except (ValueError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, role: {user.role})")


# =============================================================================
# EQUIPMENT / STOCK
# =============================================================================

@click.group('equipment')
def equipment_group():
    """Equipment catalog commands."""


@equipment_group.command('create')
@click.option('--org-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--stock', 'total_stock', type=int, default=0, show_default=True)
@click.option('--price-per-day', 'price_per_day_cents', type=int, default=0, show_default=True, help='Cents')
@click.option('--category')
@click.option('--min-stock', 'min_stock_level', type=int, default=0, show_default=True)
@with_appcontext
def create_equipment_cli(org_id, name, total_stock, price_per_day_cents, category, min_stock_level):
    """Create an equipment type with its initial stock."""
    if not db.session.get(Organization, org_id):
        click.echo(f"FAIL Organization ID {org_id} not found")
        return
    try:
        equipment = catalog_service.create_equipment(
            org_id=org_id,
            name=name,
            total_stock=total_stock,
            price_per_day_cents=price_per_day_cents,
            category=category,
            min_stock_level=min_stock_level,
        )
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created equipment: {equipment.name} (ID: {equipment.id}, stock: {equipment.total_stock})")


@equipment_group.command('list')
@click.option('--org-id', type=int, required=True)
@with_appcontext
def list_equipment_cli(org_id):
    """List equipment with stock counters."""
    equipments = catalog_service.list_equipment(org_id)
    if not equipments:
        click.echo("No equipment found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<30} {'Total':>6} {'Avail':>6} {'Resv':>6} {'Maint':>6} {'Dmg':>6}  Status")
    click.echo("="*90)
    for e in equipments:
        click.echo(
            f"{e.id:<5} {e.name[:30]:<30} {e.total_stock:>6} {e.available_stock:>6} "
            f"{e.reserved_stock:>6} {e.maintenance_stock:>6} {e.damaged_stock:>6}  {e.status}"
        )
    click.echo("="*90 + "\n")


@click.group('stock')
def stock_group():
    """Stock consistency commands."""


@stock_group.command('check')
@click.option('--org-id', type=int, default=None)
@with_appcontext
def check_stock_cli(org_id):
    """Verify the stock counter invariant on every equipment row."""
    violations = stock_service.find_invariant_violations(org_id)
    checked = db.session.query(Equipment).count() if org_id is None else \
        db.session.query(Equipment).filter_by(org_id=org_id).count()

    if not violations:
        click.echo(f"PASS {checked} equipment row(s) consistent")
        return

    for e in violations:
        click.echo(
            f"FAIL Equipment {e.id} {e.name!r}: total={e.total_stock} available={e.available_stock} "
            f"reserved={e.reserved_stock} maintenance={e.maintenance_stock} damaged={e.damaged_stock}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(equipment_group)
    app.cli.add_command(stock_group)
