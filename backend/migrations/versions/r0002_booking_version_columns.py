"""Add optimistic-lock version columns to bookings and booking_items

Revision ID: r0002
Revises: r0001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "r0002"
down_revision = "r0001"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("bookings", schema=None) as batch_op:
        batch_op.add_column(sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"))

    with op.batch_alter_table("booking_items", schema=None) as batch_op:
        batch_op.add_column(sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"))


def downgrade():
    with op.batch_alter_table("booking_items", schema=None) as batch_op:
        batch_op.drop_column("version_id")

    with op.batch_alter_table("bookings", schema=None) as batch_op:
        batch_op.drop_column("version_id")
