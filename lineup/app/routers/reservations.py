from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lineup.app.core.errors import LedgerError, ledger_error_to_http
from lineup.app.dependencies import get_ledger
from lineup.app.routers.schemas import (
    CancelIn,
    CreateReservationIn,
    CreateReservationOut,
    MetadataOut,
    MetadataPatchIn,
    ReservationOut,
    StatusUpdateIn,
)
from lineup.app.services.ledger.service import ReservationLedger
from lineup.app.services.ledger.types import GuestInfo, ReservationSource, ReservationStatus


router = APIRouter()


def _require_tz(value: datetime, field: str) -> None:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"{field} must include timezone information")


@router.post("/reservations", response_model=CreateReservationOut, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: CreateReservationIn,
    ledger: ReservationLedger = Depends(get_ledger),
) -> CreateReservationOut:
    _require_tz(payload.start_at, "start_at")
    try:
        reservation_id = await ledger.create_reservation(
            restaurant_id=payload.restaurant_id,
            start_at=payload.start_at,
            party_size=payload.party_size,
            source=ReservationSource(
                system=payload.source.system,
                external_id=payload.source.external_id,
            ),
            guest=GuestInfo(**payload.guest.model_dump()),
            metadata=payload.metadata,
            reservation_id=payload.reservation_id,
        )
    except LedgerError as exc:
        raise ledger_error_to_http(exc) from exc
    return CreateReservationOut(id=reservation_id)


@router.get("/reservations/{restaurant_id}", response_model=list[ReservationOut])
async def list_reservations(
    restaurant_id: str,
    start: datetime = Query(...),
    end: datetime = Query(...),
    status_filter: ReservationStatus | None = Query(default=None, alias="status"),
    ledger: ReservationLedger = Depends(get_ledger),
) -> list[ReservationOut]:
    _require_tz(start, "start")
    _require_tz(end, "end")
    reservations = await ledger.get_in_window(restaurant_id, start, end, status_filter)
    return [ReservationOut.from_domain(r) for r in reservations]


@router.get("/reservations/{restaurant_id}/{reservation_id}", response_model=ReservationOut)
async def get_reservation(
    restaurant_id: str,
    reservation_id: str,
    ledger: ReservationLedger = Depends(get_ledger),
) -> ReservationOut:
    reservation = await ledger.get(restaurant_id, reservation_id)
    if reservation is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Reservation {reservation_id} not found")
    return ReservationOut.from_domain(reservation)


@router.post("/reservations/{restaurant_id}/{reservation_id}/status", status_code=status.HTTP_204_NO_CONTENT)
async def update_status(
    restaurant_id: str,
    reservation_id: str,
    payload: StatusUpdateIn,
    ledger: ReservationLedger = Depends(get_ledger),
) -> None:
    try:
        await ledger.update_status(
            restaurant_id,
            reservation_id,
            payload.status,
            source=payload.source,
            metadata=payload.metadata,
        )
    except LedgerError as exc:
        raise ledger_error_to_http(exc) from exc


@router.post("/reservations/{restaurant_id}/{reservation_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_reservation(
    restaurant_id: str,
    reservation_id: str,
    payload: CancelIn,
    ledger: ReservationLedger = Depends(get_ledger),
) -> None:
    try:
        await ledger.cancel(restaurant_id, reservation_id, source=payload.source, reason=payload.reason)
    except LedgerError as exc:
        raise ledger_error_to_http(exc) from exc


@router.patch("/reservations/{restaurant_id}/{reservation_id}/metadata", response_model=MetadataOut)
async def patch_metadata(
    restaurant_id: str,
    reservation_id: str,
    payload: MetadataPatchIn,
    ledger: ReservationLedger = Depends(get_ledger),
) -> MetadataOut:
    try:
        merged = await ledger.update_metadata(restaurant_id, reservation_id, payload.updates)
    except LedgerError as exc:
        raise ledger_error_to_http(exc) from exc
    return MetadataOut(metadata=merged)
