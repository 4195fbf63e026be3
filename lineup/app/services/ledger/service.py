"""
Canonical reservation ledger.

Every reservation, native or from an external channel, enters through
create_reservation and changes status only through update_status. Both run as
a single transaction against the store: a lookup followed by a conditional
write.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from lineup.app.core.clock import Clock
from lineup.app.core.errors import (
    DuplicateReservationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from lineup.app.services.ledger.store import LedgerStore
from lineup.app.services.ledger.types import (
    INACTIVE_STATUSES,
    GuestInfo,
    Reconciliation,
    Reservation,
    ReservationSource,
    ReservationStatus,
    StatusChange,
)

logger = logging.getLogger(__name__)

CREATE_SOURCE = "LEDGER_CREATE"


class ReservationLedger:
    def __init__(self, store: LedgerStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def create_reservation(
        self,
        *,
        restaurant_id: str,
        start_at: datetime,
        party_size: int,
        source: ReservationSource,
        guest: GuestInfo | None = None,
        metadata: dict[str, Any] | None = None,
        reservation_id: str | None = None,
    ) -> str:
        """Validate, dedupe on external id and write the reservation; returns its id."""
        guest = guest or GuestInfo()
        party_size = _validate_new_reservation(restaurant_id, start_at, party_size, source, guest)

        now = self._clock.now()
        initial = ReservationStatus.CONFIRMED if source.system.is_external else ReservationStatus.BOOKED
        reservation = Reservation(
            id=reservation_id or str(uuid4()),
            restaurant_id=restaurant_id,
            start_at=start_at,
            party_size=party_size,
            source=source,
            guest=guest,
            status=initial,
            created_at=now,
            updated_at=now,
            status_history=(
                StatusChange(status=initial, previous_status=None, timestamp=now, source=CREATE_SOURCE),
            ),
            reconciliation=Reconciliation(),
            metadata=dict(metadata or {}),
        )

        try:
            async with self._store.transaction() as tx:
                if source.external_id and await tx.external_id_taken(
                    restaurant_id, source.system, source.external_id
                ):
                    raise DuplicateReservationError(
                        f"Duplicate external reservation ID: {source.external_id}"
                    )
                await tx.insert(reservation)
        except IntegrityError as exc:
            # A concurrent ingestion won the race past the lookup; the unique constraint caught it.
            key = source.external_id or reservation.id
            logger.warning("Duplicate reservation rejected by constraint for %s/%s", restaurant_id, key)
            raise DuplicateReservationError(f"Duplicate reservation: {key}") from exc
        except DuplicateReservationError:
            logger.warning(
                "Duplicate external reservation %s/%s/%s",
                restaurant_id,
                source.system.value,
                source.external_id,
            )
            raise

        logger.info(
            "Reservation %s created for %s (%s, party of %s, %s)",
            reservation.id,
            restaurant_id,
            source.system.value,
            reservation.party_size,
            initial.value,
        )
        return reservation.id

    async def update_status(
        self,
        restaurant_id: str,
        reservation_id: str,
        new_status: ReservationStatus,
        *,
        source: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Move a reservation to new_status, appending to its status history in the same transaction."""
        new_status = ReservationStatus(new_status)
        source = source or "SYSTEM"

        async with self._store.transaction() as tx:
            current = await tx.get(restaurant_id, reservation_id, for_update=True)
            if current is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")

            if current.status == new_status:
                return

            if not current.status.can_transition_to(new_status):
                logger.warning(
                    "Rejected transition %s -> %s for reservation %s",
                    current.status.value,
                    new_status.value,
                    reservation_id,
                )
                raise InvalidTransitionError(
                    f"Cannot move reservation {reservation_id} from {current.status.value} to {new_status.value}"
                )

            now = self._clock.now()
            change = StatusChange(
                status=new_status,
                previous_status=current.status,
                timestamp=now,
                source=source,
                metadata=dict(metadata or {}),
            )
            last_change = dict(current.metadata.get("lastStatusChange") or {})
            last_change[new_status.value] = {"timestamp": now.isoformat(), "source": source}

            await tx.compare_and_set(
                current,
                status=new_status,
                updated_at=now,
                meta={**current.metadata, "lastStatusChange": last_change},
            )
            await tx.append_history(current, change)

        logger.info(
            "Reservation %s: %s -> %s (%s)",
            reservation_id,
            current.status.value,
            new_status.value,
            source,
        )

    async def cancel(
        self,
        restaurant_id: str,
        reservation_id: str,
        *,
        source: str,
        reason: str | None = None,
    ) -> None:
        await self.update_status(
            restaurant_id,
            reservation_id,
            ReservationStatus.CANCELLED,
            source=source,
            metadata={
                "cancellationReason": reason,
                "cancelledAt": self._clock.now().isoformat(),
            },
        )

    async def get(self, restaurant_id: str, reservation_id: str) -> Reservation | None:
        return await self._store.get(restaurant_id, reservation_id)

    async def find_by_external_id(
        self,
        restaurant_id: str,
        source: ReservationSource,
    ) -> Reservation | None:
        if not source.external_id:
            return None
        return await self._store.find_by_external_id(restaurant_id, source.system, source.external_id)

    async def get_in_window(
        self,
        restaurant_id: str,
        start: datetime,
        end: datetime,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]:
        """Reservations whose start_at falls in [start, end], ascending."""
        return await self._store.range_query(restaurant_id, start, end, status)

    async def update_metadata(
        self,
        restaurant_id: str,
        reservation_id: str,
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge updates into the metadata map (e.g. assigned server); returns the merged map."""
        async with self._store.transaction() as tx:
            current = await tx.get(restaurant_id, reservation_id, for_update=True)
            if current is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")
            merged = {**current.metadata, **updates}
            await tx.compare_and_set(current, meta=merged, updated_at=self._clock.now())
        return merged

    async def mark_reconciled(
        self,
        restaurant_id: str,
        reservation_id: str,
        *,
        status: str = "RECONCILED",
        divergence_detected: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record the outcome of a reconciliation pass against the source channel."""
        async with self._store.transaction() as tx:
            current = await tx.get(restaurant_id, reservation_id, for_update=True)
            if current is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")
            now = self._clock.now()
            reconciliation = Reconciliation(
                last_reconciled_at=now,
                reconciliation_status=status,
                divergence_detected=divergence_detected,
                details=details,
            )
            await tx.compare_and_set(
                current,
                reconciliation=reconciliation.to_document(),
                updated_at=now,
            )

    async def get_for_diner(
        self,
        diner_id: str,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]:
        return await self._store.diner_query(diner_id, status)

    async def get_upcoming_for_diner(self, diner_id: str) -> list[Reservation]:
        now = self._clock.now()
        return [
            r
            for r in await self._store.diner_query(diner_id)
            if r.start_at >= now and r.status not in INACTIVE_STATUSES
        ]

    async def get_past_for_diner(self, diner_id: str, limit: int = 10) -> list[Reservation]:
        now = self._clock.now()
        past = [r for r in await self._store.diner_query(diner_id) if r.start_at < now]
        return past[:limit]


def _validate_new_reservation(
    restaurant_id: str,
    start_at: datetime,
    party_size: int,
    source: ReservationSource,
    guest: GuestInfo,
) -> int:
    """Raise ValidationError for unusable input; returns the party size as an int."""
    if not restaurant_id or start_at is None or source is None or source.system is None:
        raise ValidationError("Missing required fields: restaurant_id, start_at, party_size, source.system")
    if start_at.tzinfo is None or start_at.tzinfo.utcoffset(start_at) is None:
        raise ValidationError("start_at must include timezone information")
    size = _party_size(party_size)
    if source.system.is_external and not source.external_id:
        raise ValidationError(f"external_id is required for {source.system.value} reservations")
    if not source.system.is_external and not (guest.phone and guest.phone.strip()):
        raise ValidationError("Phone verification required for native reservations")
    return size


def _party_size(value: object) -> int:
    # Integral numeric strings arrive from external channels; floats and bools never count.
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"party_size must be a positive integer, got {value!r}")
    return value
