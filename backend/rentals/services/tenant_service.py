# Overview: Organization and plan management.

"""
Multi-Tenant Service: organizations and subscription plans.

WHY: Every rental business is an Organization with a Plan. Creation lives
here so the CLI and the test fixtures build tenants the same way.

SECURITY INVARIANTS:
1. Every authenticated request has g.org_id set (require_auth)
2. Every lookup of tenant-owned rows filters on org_id
3. A row of another tenant is reported as not found, never as forbidden
"""

from ..extensions import db
from ..models import Organization, Plan


DEFAULT_PLAN_NAME = "Standard"


def get_or_create_plan(name: str = DEFAULT_PLAN_NAME, max_bookings_per_month: int = -1) -> Plan:
    plan = db.session.query(Plan).filter_by(name=name).first()
    if plan:
        return plan
    plan = Plan(name=name, max_bookings_per_month=max_bookings_per_month, is_active=True)
    db.session.add(plan)
    db.session.flush()
    return plan


def create_organization(name: str, code: str | None = None, plan: Plan | None = None) -> Organization:
    """
    Create an organization on `plan` (the default unlimited plan if omitted).

    Raises ValueError if the code is already taken.
    """
    if code:
        existing = db.session.query(Organization).filter_by(code=code).first()
        if existing:
            raise ValueError(f"Organization code {code!r} already exists")

    if plan is None:
        plan = get_or_create_plan()

    org = Organization(name=name, code=code, plan_id=plan.id, is_active=True)
    db.session.add(org)
    db.session.commit()
    return org


def list_organizations() -> list[Organization]:
    return db.session.query(Organization).order_by(Organization.id).all()
