from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lineup.app.core.config import settings
from lineup.app.dependencies import get_availability_engine, get_config_provider
from lineup.app.routers.schemas import (
    AvailabilityOut,
    AvailabilityRangeOut,
    SlotCheckIn,
    SlotCheckOut,
    SlotOut,
)
from lineup.app.services.availability.engine import OUTSIDE_SERVICE_HOURS, AvailabilityEngine
from lineup.app.services.availability.types import AvailabilityOptions, SlotCheck
from lineup.app.services.restaurant_config import RestaurantConfigProvider


router = APIRouter()


def _options(max_covers_per_15_min: int | None) -> AvailabilityOptions:
    return AvailabilityOptions(max_covers_per_15_min=max_covers_per_15_min)


@router.get("/availability/{restaurant_id}", response_model=AvailabilityOut)
async def day_availability(
    restaurant_id: str,
    day: date = Query(..., alias="date"),
    max_covers_per_15_min: int | None = Query(default=None, ge=1),
    engine: AvailabilityEngine = Depends(get_availability_engine),
    provider: RestaurantConfigProvider = Depends(get_config_provider),
) -> AvailabilityOut:
    config = await provider.get_config(restaurant_id)
    if config is None:
        # Unknown restaurant: nothing bookable, not an error.
        return AvailabilityOut(restaurant_id=restaurant_id, day=day, slots=[])

    slots = await engine.compute_availability(restaurant_id, day, config, _options(max_covers_per_15_min))
    return AvailabilityOut(
        restaurant_id=restaurant_id,
        day=day,
        slots=[SlotOut.from_domain(s) for s in slots],
    )


@router.get("/availability/{restaurant_id}/range", response_model=AvailabilityRangeOut)
async def range_availability(
    restaurant_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    max_covers_per_15_min: int | None = Query(default=None, ge=1),
    engine: AvailabilityEngine = Depends(get_availability_engine),
    provider: RestaurantConfigProvider = Depends(get_config_provider),
) -> AvailabilityRangeOut:
    span = (end_date - start_date).days + 1
    if span > settings.MAX_AVAILABILITY_RANGE_DAYS:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Date range exceeds {settings.MAX_AVAILABILITY_RANGE_DAYS} days",
        )

    config = await provider.get_config(restaurant_id)
    if config is None:
        return AvailabilityRangeOut(restaurant_id=restaurant_id, days={})

    days = await engine.get_availability_for_date_range(
        restaurant_id, start_date, end_date, config, _options(max_covers_per_15_min)
    )
    return AvailabilityRangeOut(
        restaurant_id=restaurant_id,
        days={day: [SlotOut.from_domain(s) for s in slots] for day, slots in days.items()},
    )


@router.post("/availability/check", response_model=SlotCheckOut)
async def check_availability(
    payload: SlotCheckIn,
    engine: AvailabilityEngine = Depends(get_availability_engine),
    provider: RestaurantConfigProvider = Depends(get_config_provider),
) -> SlotCheckOut:
    config = await provider.get_config(payload.restaurant_id)
    if config is None:
        return SlotCheckOut.from_domain(SlotCheck(available=False, slot=None, reason=OUTSIDE_SERVICE_HOURS))

    check = await engine.check_slot_availability(
        payload.restaurant_id,
        payload.requested_time,
        payload.party_size,
        config,
        _options(payload.max_covers_per_15_min),
    )
    return SlotCheckOut.from_domain(check)
