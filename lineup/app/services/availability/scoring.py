"""
Slot scorer: covers -> tier and confidence.

The capacity cap is a per-15-minute ceiling (floor(total_seats * 0.35) unless
overridden), not a seat-by-seat turnover model; it approximates how many new
covers the kitchen can absorb in one window.
"""
from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime

from lineup.app.services.availability.types import Confidence, GridSlot, Slot, SlotTier

CAPACITY_CAP_RATIO = 0.35

SAME_DAY_MINUTES = 120
EARLIEST_CONFIDENT_HOUR = 11
LATEST_CONFIDENT_HOUR = 21


def capacity_cap(total_seats: int, override: int | None = None) -> int:
    if override:
        return override
    return math.floor(total_seats * CAPACITY_CAP_RATIO)


def _tier_and_confidence(
    available_covers: int,
    load_percentage: float,
    cap: int,
    minutes_until: float,
) -> tuple[SlotTier, Confidence]:
    if available_covers >= cap * 0.5 and load_percentage < 50:
        return SlotTier.RECOMMENDED, Confidence.HIGH
    if available_covers >= cap * 0.3 and load_percentage < 70:
        return SlotTier.AVAILABLE, Confidence.HIGH if minutes_until > 120 else Confidence.MED
    return SlotTier.FLEXIBLE, Confidence.MED if minutes_until > 60 else Confidence.LOW


def _adjust_confidence(confidence: Confidence, minutes_until: float, local_hour: int) -> Confidence:
    # Same-day first, then time of day; the second rule only touches HIGH.
    if minutes_until < SAME_DAY_MINUTES:
        confidence = confidence.downgraded()
    if (local_hour < EARLIEST_CONFIDENT_HOUR or local_hour > LATEST_CONFIDENT_HOUR) and confidence is Confidence.HIGH:
        confidence = Confidence.MED
    return confidence


def score_slots(
    grid: Iterable[GridSlot],
    *,
    cap: int,
    total_seats: int,
    avg_dining_duration: int,
    now: datetime,
) -> list[Slot]:
    """Score every slot with spare capacity and rank them by tier, then time.

    Slots with no remaining covers are dropped.
    """
    if cap <= 0 or total_seats <= 0:
        return []

    scored: list[Slot] = []
    for slot in grid:
        available_covers = cap - slot.covers
        if available_covers <= 0:
            continue

        load_percentage = slot.covers / cap * 100
        utilization_percentage = slot.covers / total_seats * 100
        minutes_until = (slot.start_at - now).total_seconds() / 60

        tier, confidence = _tier_and_confidence(available_covers, load_percentage, cap, minutes_until)
        confidence = _adjust_confidence(confidence, minutes_until, slot.start_at.hour)

        scored.append(
            Slot(
                start_at=slot.start_at,
                end_at=slot.end_at,
                covers=slot.covers,
                available_covers=available_covers,
                load_percentage=round(load_percentage, 1),
                utilization_percentage=round(utilization_percentage, 1),
                tier=tier,
                confidence=confidence,
                minutes_until=round(minutes_until),
                max_covers_per_slot=cap,
                total_seats=total_seats,
                avg_dining_duration=avg_dining_duration,
            )
        )

    scored.sort(key=lambda s: (s.tier.rank, s.start_at))
    return scored
