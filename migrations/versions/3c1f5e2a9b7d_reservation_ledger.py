"""reservation ledger

Revision ID: 3c1f5e2a9b7d
Revises: 
Create Date: 2025-11-12 09:18:44.512903

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from lineup.app.db.tables import UTCDateTime


# revision identifiers, used by Alembic.
revision: str = '3c1f5e2a9b7d'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "restaurant",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("total_seats", sa.Integer, nullable=True),
        sa.Column("capacity", sa.Integer, nullable=True),
        sa.Column("avg_dining_minutes", sa.Integer, nullable=False, server_default="90"),
    )
    op.create_table(
        "hours_rule",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("restaurant_id", sa.String(64), nullable=False, index=True),
        sa.Column("day_of_week", sa.Integer, nullable=False),
        sa.Column("open_time", sa.Time, nullable=False),
        sa.Column("close_time", sa.Time, nullable=False),
        sa.UniqueConstraint("restaurant_id", "day_of_week", name="uq_hours_rule_day"),
    )
    op.create_table(
        "reservation",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("restaurant_id", sa.String(64), nullable=False),
        sa.Column("start_at", UTCDateTime, nullable=False),
        sa.Column("party_size", sa.Integer, nullable=False),
        sa.Column("source_system", sa.String(32), nullable=False),
        sa.Column("external_id", sa.String(128), nullable=True),
        sa.Column("diner_id", sa.String(64), nullable=True),
        sa.Column("diner_name", sa.String(200), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(254), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("reconciliation", sa.JSON, nullable=False),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", UTCDateTime, nullable=False),
        sa.Column("updated_at", UTCDateTime, nullable=False),
        sa.PrimaryKeyConstraint("restaurant_id", "id", name="pk_reservation"),
        sa.UniqueConstraint("restaurant_id", "source_system", "external_id", name="uq_reservation_external_id"),
        sa.CheckConstraint("party_size > 0", name="ck_reservation_party_size"),
    )
    op.create_index("ix_reservation_window", "reservation", ["restaurant_id", "start_at"])
    op.create_index("ix_reservation_diner", "reservation", ["diner_id"])
    op.create_table(
        "reservation_status_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("restaurant_id", sa.String(64), nullable=False),
        sa.Column("reservation_id", sa.String(64), nullable=False),
        sa.Column("seq", sa.Integer, nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("previous_status", sa.String(16), nullable=True),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column("recorded_at", UTCDateTime, nullable=False),
        sa.UniqueConstraint("restaurant_id", "reservation_id", "seq", name="uq_status_history_seq"),
    )


def downgrade() -> None:
    op.drop_table("reservation_status_history")
    op.drop_index("ix_reservation_diner", table_name="reservation")
    op.drop_index("ix_reservation_window", table_name="reservation")
    op.drop_table("reservation")
    op.drop_table("hours_rule")
    op.drop_table("restaurant")
