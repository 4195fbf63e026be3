"""Load mapper: overlays reservations onto the slot grid."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import timedelta

from lineup.app.services.availability.types import GridSlot
from lineup.app.services.ledger.types import Reservation


def map_load(
    grid: list[GridSlot],
    reservations: Iterable[Reservation],
    avg_dining_duration: int,
) -> list[GridSlot]:
    """Add each reservation's party size to every slot its dining interval touches.

    A reservation occupies [start_at, start_at + avg_dining_duration). It lands on
    a slot when that interval intersects [slot.start_at, slot.end_at): either it
    starts inside the slot, or it started earlier and is still seated. The grid is
    mutated in place and returned.
    """
    duration = timedelta(minutes=avg_dining_duration)
    for reservation in reservations:
        starts = reservation.start_at
        ends = starts + duration
        party = reservation.party_size or 1
        for slot in grid:
            if slot.start_at >= ends:
                break  # grid is chronological
            if starts < slot.end_at and ends > slot.start_at:
                slot.covers += party
    return grid
