from __future__ import annotations

import json

from ..extensions import db
from rentals.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-organization document sequences.

    WHY: Prevent two concurrent bookings from receiving the same
    human-readable number (RES-0001, RES-0002, ...).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_type", name="uq_doc_sequences_org_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class ActivityLog(db.Model):
    """
    Append-only record of user-visible business events (booking created,
    return processed, stock adjusted).

    Written in a SAVEPOINT inside the caller's transaction: a failed write is
    dropped without aborting the business operation it describes.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_org_occurred", "org_id", "occurred_at"),
        db.Index("ix_activity_logs_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    action = db.Column(db.String(32), nullable=False)  # CREATE, UPDATE, CANCEL, RETURN, ...
    entity = db.Column(db.String(32), nullable=False)  # BOOKING, EQUIPMENT
    entity_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.String(500), nullable=True)

    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "description": self.description,
            "metadata": json.loads(self.meta) if self.meta else None,
            "occurred_at": to_utc_z(self.occurred_at),
        }
