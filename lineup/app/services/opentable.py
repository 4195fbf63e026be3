"""
OpenTable webhook ingestion.

Normalises OpenTable reservation events into ledger calls. Replayed or
concurrently delivered "created" events resolve to the reservation already in
the ledger instead of a second record.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from lineup.app.core.errors import DuplicateReservationError, NotFoundError, ValidationError
from lineup.app.services.ledger.service import ReservationLedger
from lineup.app.services.ledger.types import (
    GuestInfo,
    ReservationSource,
    ReservationStatus,
    SourceSystem,
)

logger = logging.getLogger(__name__)

WEBHOOK_SOURCE = "OPENTABLE_WEBHOOK"

OPENTABLE_STATUS = {
    "booked": ReservationStatus.CONFIRMED,
    "confirmed": ReservationStatus.CONFIRMED,
    "arrived": ReservationStatus.CHECKED_IN,
    "seated": ReservationStatus.SEATED,
    "done": ReservationStatus.COMPLETED,
    "completed": ReservationStatus.COMPLETED,
    "cancelled": ReservationStatus.CANCELLED,
    "canceled": ReservationStatus.CANCELLED,
    "no_show": ReservationStatus.NO_SHOW,
    "noshow": ReservationStatus.NO_SHOW,
}


@dataclass(frozen=True)
class NormalizedReservation:
    restaurant_id: str
    external_id: str
    start_at: datetime | None
    party_size: int | None
    status: ReservationStatus | None
    guest: GuestInfo
    metadata: dict[str, Any]

    @property
    def source(self) -> ReservationSource:
        return ReservationSource(system=SourceSystem.EXTERNAL_OPENTABLE, external_id=self.external_id)


@dataclass(frozen=True)
class IngestResult:
    event_type: str
    reservation_id: str
    created: bool


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """HMAC-SHA256 of the raw body, hex encoded."""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def normalize_reservation(data: dict[str, Any]) -> NormalizedReservation:
    restaurant_id = data.get("restaurantId")
    external_id = data.get("reservationId")
    if not restaurant_id or not external_id:
        raise ValidationError("OpenTable payload requires restaurantId and reservationId")

    raw_start = data.get("reservationDateTime")
    if raw_start is not None and not isinstance(raw_start, str):
        raise ValidationError(f"reservationDateTime must be an ISO 8601 string, got {raw_start!r}")
    try:
        start_at = datetime.fromisoformat(raw_start.replace("Z", "+00:00")) if raw_start else None
    except ValueError as exc:
        raise ValidationError(f"Unparseable reservationDateTime: {raw_start}") from exc

    raw_status = data.get("status") or ""
    if not isinstance(raw_status, str):
        raise ValidationError(f"status must be a string, got {raw_status!r}")
    raw_status = raw_status.strip().lower()

    return NormalizedReservation(
        restaurant_id=restaurant_id,
        external_id=str(external_id),
        start_at=start_at,
        party_size=data.get("partySize"),
        status=OPENTABLE_STATUS.get(raw_status),
        guest=GuestInfo(
            diner_name=data.get("dinerName"),
            phone=data.get("dinerPhone"),
            email=data.get("dinerEmail"),
        ),
        metadata={
            "specialRequests": data.get("specialRequests"),
            "originalSourceData": data,
        },
    )


async def ingest_event(ledger: ReservationLedger, event_type: str, data: dict[str, Any]) -> IngestResult:
    """Apply one OpenTable event to the ledger."""
    normalized = normalize_reservation(data)

    if event_type == "reservation.created":
        return await _ingest_created(ledger, event_type, normalized)

    if event_type in ("reservation.updated", "reservation.cancelled"):
        existing = await ledger.find_by_external_id(normalized.restaurant_id, normalized.source)
        if existing is None:
            raise NotFoundError(f"No reservation for OpenTable id {normalized.external_id}")

        if event_type == "reservation.cancelled":
            await ledger.cancel(
                normalized.restaurant_id,
                existing.id,
                source=WEBHOOK_SOURCE,
                reason=data.get("cancellationReason"),
            )
        elif normalized.status is not None:
            await ledger.update_status(
                normalized.restaurant_id,
                existing.id,
                normalized.status,
                source=WEBHOOK_SOURCE,
                metadata={"openTableStatus": data.get("status")},
            )
        return IngestResult(event_type=event_type, reservation_id=existing.id, created=False)

    raise ValidationError(f"Unsupported OpenTable event type: {event_type}")


async def _ingest_created(
    ledger: ReservationLedger,
    event_type: str,
    normalized: NormalizedReservation,
) -> IngestResult:
    if normalized.start_at is None or normalized.party_size is None:
        raise ValidationError("OpenTable reservation.created requires reservationDateTime and partySize")
    try:
        reservation_id = await ledger.create_reservation(
            restaurant_id=normalized.restaurant_id,
            start_at=normalized.start_at,
            party_size=normalized.party_size,
            source=normalized.source,
            guest=normalized.guest,
            metadata=normalized.metadata,
        )
    except DuplicateReservationError:
        existing = await ledger.find_by_external_id(normalized.restaurant_id, normalized.source)
        if existing is None:
            raise
        logger.info("OpenTable reservation %s already ingested as %s", normalized.external_id, existing.id)
        return IngestResult(event_type=event_type, reservation_id=existing.id, created=False)
    return IngestResult(event_type=event_type, reservation_id=reservation_id, created=True)
