"""Slot generator: the day's 15-minute grid."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo

from lineup.app.services.availability.types import GridSlot

SLOT_MINUTES = 15
SLOT_WIDTH = timedelta(minutes=SLOT_MINUTES)


def generate_slots(
    day: date,
    open_time: time,
    close_time: time,
    avg_dining_duration: int,
    tz: tzinfo,
) -> list[GridSlot]:
    """Slots from open_time up to close_time - avg_dining_duration inclusive.

    The last slot leaves a full dining duration before closing. Hours that close
    at or before they open produce no slots. Stepping happens in UTC so DST
    transition days keep every slot 15 real minutes wide.
    """
    opens_at = datetime.combine(day, open_time, tzinfo=tz).astimezone(timezone.utc)
    closes_at = datetime.combine(day, close_time, tzinfo=tz).astimezone(timezone.utc)
    last_start = closes_at - timedelta(minutes=avg_dining_duration)

    slots: list[GridSlot] = []
    cursor = opens_at
    while cursor <= last_start:
        slots.append(
            GridSlot(
                start_at=cursor.astimezone(tz),
                end_at=(cursor + SLOT_WIDTH).astimezone(tz),
            )
        )
        cursor += SLOT_WIDTH
    return slots


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """[start_of_day, end_of_day] in the restaurant's timezone."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time.max, tzinfo=tz)
    return start, end
