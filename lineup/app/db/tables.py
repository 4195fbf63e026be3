"""
Table definitions for the reservation ledger and restaurant configuration.

Rows in reservation_status_history are insert-only; the current status lives on
reservation and is advanced with a version compare-and-set.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Time,
    UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamps stored as UTC on every backend."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime cannot be stored; attach a timezone")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            # SQLite has no timezone storage; keep naive UTC so range comparisons stay lexical.
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


metadata = MetaData()


restaurant = Table(
    "restaurant",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("timezone", String(64), nullable=False, server_default="UTC"),
    Column("total_seats", Integer, nullable=True),
    Column("capacity", Integer, nullable=True),
    Column("avg_dining_minutes", Integer, nullable=False, server_default="90"),
)

hours_rule = Table(
    "hours_rule",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("restaurant_id", String(64), nullable=False, index=True),
    Column("day_of_week", Integer, nullable=False),  # 0 = Monday
    Column("open_time", Time, nullable=False),
    Column("close_time", Time, nullable=False),
    UniqueConstraint("restaurant_id", "day_of_week", name="uq_hours_rule_day"),
)

reservation = Table(
    "reservation",
    metadata,
    Column("id", String(64), nullable=False),
    Column("restaurant_id", String(64), nullable=False),
    Column("start_at", UTCDateTime, nullable=False),
    Column("party_size", Integer, nullable=False),
    Column("source_system", String(32), nullable=False),
    Column("external_id", String(128), nullable=True),
    Column("diner_id", String(64), nullable=True),
    Column("diner_name", String(200), nullable=True),
    Column("phone", String(32), nullable=True),
    Column("email", String(254), nullable=True),
    Column("status", String(16), nullable=False),
    Column("reconciliation", JSON, nullable=False),
    Column("metadata", JSON, nullable=False, key="meta"),
    Column("version", Integer, nullable=False, server_default="1"),
    Column("created_at", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
    PrimaryKeyConstraint("restaurant_id", "id", name="pk_reservation"),
    # NULL external ids never collide, so native bookings are unaffected.
    UniqueConstraint("restaurant_id", "source_system", "external_id", name="uq_reservation_external_id"),
    CheckConstraint("party_size > 0", name="ck_reservation_party_size"),
    Index("ix_reservation_window", "restaurant_id", "start_at"),
    Index("ix_reservation_diner", "diner_id"),
)

reservation_status_history = Table(
    "reservation_status_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("restaurant_id", String(64), nullable=False),
    Column("reservation_id", String(64), nullable=False),
    Column("seq", Integer, nullable=False),
    Column("status", String(16), nullable=False),
    Column("previous_status", String(16), nullable=True),
    Column("source", String(64), nullable=False),
    Column("metadata", JSON, nullable=False, key="meta"),
    Column("recorded_at", UTCDateTime, nullable=False),
    UniqueConstraint("restaurant_id", "reservation_id", "seq", name="uq_status_history_seq"),
)
