"""
Transactional persistence for the reservation ledger.

LedgerStore.transaction() opens one session and one database transaction;
every read-then-conditional-write of the ledger happens on the
LedgerTransaction it yields. Writes to an existing row go through
compare_and_set, which only applies when the row still carries the version the
caller read.
"""
from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import and_, insert, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lineup.app.core.errors import ConcurrentUpdateError
from lineup.app.db.tables import reservation as reservation_table
from lineup.app.db.tables import reservation_status_history as history_table
from lineup.app.services.ledger.types import (
    GuestInfo,
    Reconciliation,
    Reservation,
    ReservationSource,
    ReservationStatus,
    SourceSystem,
    StatusChange,
)


def _history_from_row(row: RowMapping) -> StatusChange:
    previous = row["previous_status"]
    return StatusChange(
        status=ReservationStatus(row["status"]),
        previous_status=ReservationStatus(previous) if previous else None,
        timestamp=row["recorded_at"],
        source=row["source"],
        metadata=dict(row[history_table.c.meta] or {}),
    )


def _reservation_from_row(row: RowMapping, history: Iterable[StatusChange] = ()) -> Reservation:
    return Reservation(
        id=row["id"],
        restaurant_id=row["restaurant_id"],
        start_at=row["start_at"],
        party_size=row["party_size"],
        source=ReservationSource(
            system=SourceSystem(row["source_system"]),
            external_id=row["external_id"],
        ),
        guest=GuestInfo(
            diner_id=row["diner_id"],
            diner_name=row["diner_name"],
            phone=row["phone"],
            email=row["email"],
        ),
        status=ReservationStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        status_history=tuple(history),
        reconciliation=Reconciliation.from_document(row["reconciliation"]),
        metadata=dict(row[reservation_table.c.meta] or {}),
        version=row["version"],
    )


def _row_key(restaurant_id: str, reservation_id: str):
    return and_(
        reservation_table.c.restaurant_id == restaurant_id,
        reservation_table.c.id == reservation_id,
    )


class LedgerTransaction:
    """Operations bound to one open transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(
        self,
        restaurant_id: str,
        reservation_id: str,
        *,
        for_update: bool = False,
    ) -> Reservation | None:
        query = select(reservation_table).where(_row_key(restaurant_id, reservation_id))
        if for_update:
            # Row lock on PostgreSQL; SQLite serialises writers on its own.
            query = query.with_for_update()
        row = (await self._session.execute(query)).mappings().one_or_none()
        if row is None:
            return None
        history = await self._history(restaurant_id, reservation_id)
        return _reservation_from_row(row, history)

    async def _history(self, restaurant_id: str, reservation_id: str) -> list[StatusChange]:
        result = await self._session.execute(
            select(history_table)
            .where(
                history_table.c.restaurant_id == restaurant_id,
                history_table.c.reservation_id == reservation_id,
            )
            .order_by(history_table.c.seq.asc())
        )
        return [_history_from_row(row) for row in result.mappings()]

    async def external_id_taken(
        self,
        restaurant_id: str,
        system: SourceSystem,
        external_id: str,
    ) -> bool:
        result = await self._session.execute(
            select(reservation_table.c.id)
            .where(
                reservation_table.c.restaurant_id == restaurant_id,
                reservation_table.c.source_system == system.value,
                reservation_table.c.external_id == external_id,
            )
            .limit(1)
        )
        return result.first() is not None

    async def insert(self, reservation: Reservation) -> None:
        await self._session.execute(
            insert(reservation_table).values(
                id=reservation.id,
                restaurant_id=reservation.restaurant_id,
                start_at=reservation.start_at,
                party_size=reservation.party_size,
                source_system=reservation.source.system.value,
                external_id=reservation.source.external_id,
                diner_id=reservation.guest.diner_id,
                diner_name=reservation.guest.diner_name,
                phone=reservation.guest.phone,
                email=reservation.guest.email,
                status=reservation.status.value,
                reconciliation=reservation.reconciliation.to_document(),
                meta=reservation.metadata,
                version=reservation.version,
                created_at=reservation.created_at,
                updated_at=reservation.updated_at,
            )
        )
        for seq, change in enumerate(reservation.status_history):
            await self._insert_history(reservation.restaurant_id, reservation.id, seq, change)

    async def compare_and_set(
        self,
        reservation: Reservation,
        **fields: Any,
    ) -> int:
        """Apply fields only if the row is still at reservation.version; returns the new version."""
        new_version = reservation.version + 1
        values = {"version": new_version, **fields}
        if "status" in values and isinstance(values["status"], ReservationStatus):
            values["status"] = values["status"].value
        result = await self._session.execute(
            update(reservation_table)
            .where(
                _row_key(reservation.restaurant_id, reservation.id),
                reservation_table.c.version == reservation.version,
            )
            .values(**values)
        )
        if result.rowcount != 1:
            raise ConcurrentUpdateError(
                f"Reservation {reservation.id} changed concurrently (expected version {reservation.version})"
            )
        return new_version

    async def append_history(self, reservation: Reservation, change: StatusChange) -> None:
        await self._insert_history(
            reservation.restaurant_id,
            reservation.id,
            len(reservation.status_history),
            change,
        )

    async def _insert_history(
        self,
        restaurant_id: str,
        reservation_id: str,
        seq: int,
        change: StatusChange,
    ) -> None:
        await self._session.execute(
            insert(history_table).values(
                restaurant_id=restaurant_id,
                reservation_id=reservation_id,
                seq=seq,
                status=change.status.value,
                previous_status=change.previous_status.value if change.previous_status else None,
                source=change.source,
                meta=change.metadata,
                recorded_at=change.timestamp,
            )
        )


class LedgerStore:
    """Session-per-operation access to the ledger tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[LedgerTransaction]:
        async with self._session_factory() as session:
            async with session.begin():
                yield LedgerTransaction(session)

    async def get(self, restaurant_id: str, reservation_id: str) -> Reservation | None:
        async with self._session_factory() as session:
            return await LedgerTransaction(session).get(restaurant_id, reservation_id)

    async def find_by_external_id(
        self,
        restaurant_id: str,
        system: SourceSystem,
        external_id: str,
    ) -> Reservation | None:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(reservation_table.c.id).where(
                        reservation_table.c.restaurant_id == restaurant_id,
                        reservation_table.c.source_system == system.value,
                        reservation_table.c.external_id == external_id,
                    )
                )
            ).first()
            if row is None:
                return None
            return await LedgerTransaction(session).get(restaurant_id, row.id)

    async def range_query(
        self,
        restaurant_id: str,
        start_at: datetime,
        end_at: datetime,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]:
        """Reservations with start_at in [start_at, end_at], ascending. History is not loaded."""
        query = select(reservation_table).where(
            reservation_table.c.restaurant_id == restaurant_id,
            reservation_table.c.start_at >= start_at,
            reservation_table.c.start_at <= end_at,
        )
        if status is not None:
            query = query.where(reservation_table.c.status == status.value)
        query = query.order_by(reservation_table.c.start_at.asc(), reservation_table.c.id.asc())

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_reservation_from_row(row) for row in result.mappings()]

    async def diner_query(
        self,
        diner_id: str,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]:
        """All reservations for a diner across restaurants, newest first."""
        query = select(reservation_table).where(reservation_table.c.diner_id == diner_id)
        if status is not None:
            query = query.where(reservation_table.c.status == status.value)
        query = query.order_by(reservation_table.c.start_at.desc())

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_reservation_from_row(row) for row in result.mappings()]
