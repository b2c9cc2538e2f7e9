# Overview: Fire-and-forget activity log writer.

from __future__ import annotations

import json

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ActivityLog


def log_activity(
    *,
    action: str,
    entity: str,
    entity_id: int | None,
    description: str,
    metadata: dict | None,
    user_id: int | None,
    org_id: int,
) -> ActivityLog | None:
    """
    Record a user-visible business event in the caller's transaction.

    The insert runs in a SAVEPOINT: if it fails, only the log row is dropped
    and the booking/stock work around it still commits. Returns None when the
    write was dropped.
    """
    entry = ActivityLog(
        org_id=org_id,
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        description=description[:500] if description else None,
        meta=json.dumps(metadata, default=str) if metadata is not None else None,
    )
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except SQLAlchemyError:
        current_app.logger.warning(
            "Activity log write dropped: %s %s %s", action, entity, entity_id, exc_info=True
        )
        return None
    return entry
