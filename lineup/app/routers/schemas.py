from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from lineup.app.services.availability.types import Confidence, Slot, SlotCheck, SlotTier
from lineup.app.services.ledger.types import Reservation, ReservationStatus, SourceSystem, StatusChange


class ReservationSourceIn(BaseModel):
    system: SourceSystem = SourceSystem.NATIVE
    external_id: str | None = Field(default=None, max_length=128)


class GuestIn(BaseModel):
    diner_id: str | None = Field(default=None, max_length=64)
    diner_name: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=254)


class CreateReservationIn(BaseModel):
    restaurant_id: str = Field(min_length=1, max_length=64)
    # ISO 8601 with offset, e.g. "2025-11-05T19:00:00-05:00"
    start_at: datetime
    party_size: int = Field(ge=1, le=50)
    source: ReservationSourceIn = Field(default_factory=ReservationSourceIn)
    guest: GuestIn = Field(default_factory=GuestIn)
    metadata: dict[str, Any] = Field(default_factory=dict)
    reservation_id: str | None = Field(default=None, max_length=64)


class CreateReservationOut(BaseModel):
    id: str


class StatusUpdateIn(BaseModel):
    status: ReservationStatus
    source: str = Field(default="SYSTEM", max_length=64)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CancelIn(BaseModel):
    source: str = Field(default="SYSTEM", max_length=64)
    reason: str | None = Field(default=None, max_length=1024)


class MetadataPatchIn(BaseModel):
    updates: dict[str, Any]


class MetadataOut(BaseModel):
    metadata: dict[str, Any]


class StatusChangeOut(BaseModel):
    status: ReservationStatus
    previous_status: ReservationStatus | None
    timestamp: datetime
    source: str
    metadata: dict[str, Any]

    @classmethod
    def from_domain(cls, change: StatusChange) -> StatusChangeOut:
        return cls(
            status=change.status,
            previous_status=change.previous_status,
            timestamp=change.timestamp,
            source=change.source,
            metadata=change.metadata,
        )


class ReservationOut(BaseModel):
    id: str
    restaurant_id: str
    start_at: datetime
    party_size: int
    source: ReservationSourceIn
    guest: GuestIn
    status: ReservationStatus
    status_history: list[StatusChangeOut]
    reconciliation: dict[str, Any]
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, reservation: Reservation) -> ReservationOut:
        return cls(
            id=reservation.id,
            restaurant_id=reservation.restaurant_id,
            start_at=reservation.start_at,
            party_size=reservation.party_size,
            source=ReservationSourceIn(
                system=reservation.source.system,
                external_id=reservation.source.external_id,
            ),
            guest=GuestIn(
                diner_id=reservation.guest.diner_id,
                diner_name=reservation.guest.diner_name,
                phone=reservation.guest.phone,
                email=reservation.guest.email,
            ),
            status=reservation.status,
            status_history=[StatusChangeOut.from_domain(c) for c in reservation.status_history],
            reconciliation=reservation.reconciliation.to_document(),
            metadata=reservation.metadata,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
        )


class SlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_at: datetime
    end_at: datetime
    covers: int
    available_covers: int
    load_percentage: float
    utilization_percentage: float
    tier: SlotTier
    confidence: Confidence
    minutes_until: int
    max_covers_per_slot: int
    total_seats: int
    avg_dining_duration: int

    @classmethod
    def from_domain(cls, slot: Slot) -> SlotOut:
        return cls.model_validate(slot)


class AvailabilityOut(BaseModel):
    restaurant_id: str
    day: date
    slots: list[SlotOut]


class AvailabilityRangeOut(BaseModel):
    restaurant_id: str
    days: dict[str, list[SlotOut]]


class SlotCheckIn(BaseModel):
    restaurant_id: str
    requested_time: datetime
    party_size: int = Field(ge=1, le=50)
    max_covers_per_15_min: int | None = Field(default=None, ge=1)


class SlotCheckOut(BaseModel):
    available: bool
    slot: SlotOut | None
    reason: str | None

    @classmethod
    def from_domain(cls, check: SlotCheck) -> SlotCheckOut:
        return cls(
            available=check.available,
            slot=SlotOut.from_domain(check.slot) if check.slot else None,
            reason=check.reason,
        )


class OpenTableWebhookIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(alias="eventType")
    id: str | None = None
    timestamp: datetime | None = None
    data: dict[str, Any]


class OpenTableWebhookOut(BaseModel):
    success: bool
    reservation_id: str
    created: bool
