"""
Availability engine.

Availability is computed from load, not declared: build the day's grid, pour
the ledger's active reservations onto it, score what is left. The engine reads
the ledger and never writes to it.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from lineup.app.core.clock import Clock
from lineup.app.services.availability.grid import day_bounds, generate_slots
from lineup.app.services.availability.load import map_load
from lineup.app.services.availability.scoring import capacity_cap, score_slots
from lineup.app.services.availability.types import (
    AvailabilityOptions,
    GridSlot,
    Slot,
    SlotCheck,
)
from lineup.app.services.ledger.service import ReservationLedger
from lineup.app.services.restaurant_config import RestaurantConfig

logger = logging.getLogger(__name__)

OUTSIDE_SERVICE_HOURS = "Time slot not within service hours"
FULLY_BOOKED = "Time slot is fully booked"


def _resolve_zone(restaurant_id: str, config: RestaurantConfig) -> ZoneInfo | None:
    try:
        return config.zone
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r for %s; no availability", config.timezone, restaurant_id)
        return None


class AvailabilityEngine:
    def __init__(self, ledger: ReservationLedger, clock: Clock) -> None:
        self._ledger = ledger
        self._clock = clock

    async def compute_availability(
        self,
        restaurant_id: str,
        day: date,
        config: RestaurantConfig,
        options: AvailabilityOptions | None = None,
    ) -> list[Slot]:
        """Bookable slots for one day, best tier first, then chronological."""
        _, slots = await self._compute(restaurant_id, day, config, options)
        return slots

    async def _compute(
        self,
        restaurant_id: str,
        day: date,
        config: RestaurantConfig,
        options: AvailabilityOptions | None,
    ) -> tuple[list[GridSlot], list[Slot]]:
        options = options or AvailabilityOptions()
        hours = config.service_hours(day)
        if hours is None:
            logger.debug("No service hours for %s on %s", restaurant_id, day.isoformat())
            return [], []

        total_seats = config.seats
        cap = capacity_cap(total_seats, options.max_covers_per_15_min)
        duration = options.avg_dining_duration or config.avg_dining_duration
        if total_seats <= 0 or cap <= 0:
            logger.debug("No usable capacity for %s (seats=%s, cap=%s)", restaurant_id, total_seats, cap)
            return [], []

        tz = _resolve_zone(restaurant_id, config)
        if tz is None:
            return [], []

        grid = generate_slots(day, hours.open, hours.close, duration, tz)
        if not grid:
            return [], []

        start_of_day, end_of_day = day_bounds(day, tz)
        reservations = await self._ledger.get_in_window(restaurant_id, start_of_day, end_of_day)
        active = [r for r in reservations if r.is_active]
        map_load(grid, active, duration)

        slots = score_slots(
            grid,
            cap=cap,
            total_seats=total_seats,
            avg_dining_duration=duration,
            now=self._clock.now(),
        )
        return grid, slots

    async def check_slot_availability(
        self,
        restaurant_id: str,
        requested_time: datetime,
        party_size: int,
        config: RestaurantConfig,
        options: AvailabilityOptions | None = None,
    ) -> SlotCheck:
        """Can party_size be seated at requested_time? Naive times are read in the restaurant's zone."""
        tz = _resolve_zone(restaurant_id, config)
        if tz is None:
            return SlotCheck(available=False, slot=None, reason=OUTSIDE_SERVICE_HOURS)
        if requested_time.tzinfo is None:
            requested_time = requested_time.replace(tzinfo=tz)
        local_day = requested_time.astimezone(tz).date()
        # Compare as a UTC instant; same-zone comparisons ignore fold on DST days.
        instant = requested_time.astimezone(timezone.utc)

        grid, slots = await self._compute(restaurant_id, local_day, config, options)

        slot = next((s for s in slots if s.contains(instant)), None)
        if slot is None:
            in_grid = any(g.start_at <= instant < g.end_at for g in grid)
            return SlotCheck(
                available=False,
                slot=None,
                reason=FULLY_BOOKED if in_grid else OUTSIDE_SERVICE_HOURS,
            )

        if slot.available_covers < party_size:
            return SlotCheck(
                available=False,
                slot=slot,
                reason=f"Only {slot.available_covers} covers available, need {party_size}",
            )

        return SlotCheck(available=True, slot=slot, reason=None)

    async def get_availability_for_date_range(
        self,
        restaurant_id: str,
        start_date: date,
        end_date: date,
        config: RestaurantConfig,
        options: AvailabilityOptions | None = None,
    ) -> dict[str, list[Slot]]:
        """Per-day availability for start_date..end_date inclusive, keyed by ISO date."""
        days: list[date] = []
        cursor = start_date
        while cursor <= end_date:
            days.append(cursor)
            cursor += timedelta(days=1)

        # Days are independent; each ledger read opens its own session.
        results = await asyncio.gather(
            *(self.compute_availability(restaurant_id, day, config, options) for day in days)
        )
        return {day.isoformat(): slots for day, slots in zip(days, results)}
