from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import NOW, RESTAURANT_ID, RESTAURANT_TZ, SERVICE_DAY
from lineup.app.services.availability.grid import SLOT_WIDTH, day_bounds, generate_slots
from lineup.app.services.availability.load import map_load
from lineup.app.services.availability.scoring import capacity_cap, score_slots
from lineup.app.services.availability.types import Confidence, GridSlot, SlotTier
from lineup.app.services.ledger.types import (
    GuestInfo,
    Reservation,
    ReservationSource,
    ReservationStatus,
    SourceSystem,
)


TZ = ZoneInfo(RESTAURANT_TZ)


def local(hour: int, minute: int = 0, day=SERVICE_DAY) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=TZ)


def reservation_at(start_at: datetime, party_size: int) -> Reservation:
    return Reservation(
        id=f"res-{start_at:%H%M}-{party_size}",
        restaurant_id=RESTAURANT_ID,
        start_at=start_at,
        party_size=party_size,
        source=ReservationSource(system=SourceSystem.NATIVE),
        guest=GuestInfo(phone="+15550000"),
        status=ReservationStatus.CONFIRMED,
        created_at=NOW,
        updated_at=NOW,
    )


def grid_slot(start_at: datetime, covers: int = 0) -> GridSlot:
    return GridSlot(start_at=start_at, end_at=start_at + SLOT_WIDTH, covers=covers)


def score_one(slot: GridSlot, now: datetime, cap: int = 10, total_seats: int = 30):
    return score_slots([slot], cap=cap, total_seats=total_seats, avg_dining_duration=90, now=now)


# Grid


@pytest.mark.parametrize(
    "open_time, close_time, duration, last_start",
    [
        (time(11, 0), time(22, 0), 90, time(20, 30)),
        (time(17, 0), time(23, 0), 120, time(21, 0)),
        (time(11, 30), time(14, 0), 60, time(13, 0)),
        (time(17, 0), time(21, 10), 90, time(19, 30)),
    ],
)
def test_grid_bounds(open_time, close_time, duration, last_start):
    grid = generate_slots(SERVICE_DAY, open_time, close_time, duration, TZ)

    assert grid[0].start_at == datetime.combine(SERVICE_DAY, open_time, tzinfo=TZ)
    assert grid[-1].start_at.time() == last_start
    assert grid[-1].end_at <= datetime.combine(SERVICE_DAY, close_time, tzinfo=TZ)
    assert all(g.end_at - g.start_at == timedelta(minutes=15) for g in grid)
    assert all(b.start_at == a.end_at for a, b in zip(grid, grid[1:]))
    assert all(g.covers == 0 for g in grid)


def test_grid_too_short_for_a_sitting_is_empty():
    assert generate_slots(SERVICE_DAY, time(11, 0), time(12, 0), 90, TZ) == []
    assert generate_slots(SERVICE_DAY, time(22, 0), time(11, 0), 90, TZ) == []


def test_spring_forward_grid_skips_the_missing_hour():
    # 2025-03-09: 02:00 EST jumps to 03:00 EDT.
    grid = generate_slots(date(2025, 3, 9), time(1, 0), time(4, 0), 15, TZ)

    utc_starts = [g.start_at.astimezone(timezone.utc) for g in grid]
    assert len(grid) == 8
    assert [g.start_at.time() for g in grid] == [
        time(1, 0), time(1, 15), time(1, 30), time(1, 45),
        time(3, 0), time(3, 15), time(3, 30), time(3, 45),
    ]
    assert all(b - a == SLOT_WIDTH for a, b in zip(utc_starts, utc_starts[1:]))


def test_fall_back_grid_keeps_the_repeated_hour():
    # 2025-11-02: 02:00 EDT falls back to 01:00 EST.
    grid = generate_slots(date(2025, 11, 2), time(0, 0), time(4, 0), 15, TZ)

    utc_starts = [g.start_at.astimezone(timezone.utc) for g in grid]
    assert len(grid) == 20
    assert len(set(utc_starts)) == 20
    assert all(b - a == SLOT_WIDTH for a, b in zip(utc_starts, utc_starts[1:]))
    assert [g.start_at.time() for g in grid].count(time(1, 30)) == 2
    assert all(
        g.end_at.astimezone(timezone.utc) - g.start_at.astimezone(timezone.utc) == SLOT_WIDTH for g in grid
    )


def test_day_bounds_cover_the_local_day():
    start, end = day_bounds(SERVICE_DAY, TZ)
    assert start == local(0, 0)
    assert end.date() == SERVICE_DAY
    assert end - start < timedelta(days=1)


# Load mapping


def test_scenario_a_load_lands_on_six_slots():
    grid = generate_slots(SERVICE_DAY, time(11, 0), time(22, 0), 90, TZ)

    map_load(grid, [reservation_at(local(11, 0), 4)], 90)

    loaded = [g.start_at.time() for g in grid if g.covers]
    assert loaded == [time(11, 0), time(11, 15), time(11, 30), time(11, 45), time(12, 0), time(12, 15)]
    assert all(g.covers == 4 for g in grid if g.covers)
    assert sum(1 for g in grid if g.covers == 0) == len(grid) - 6


def test_reservation_inside_one_slot_counts_once():
    grid = generate_slots(SERVICE_DAY, time(11, 0), time(22, 0), 90, TZ)

    map_load(grid, [reservation_at(local(13, 0), 3)], 15)

    assert [g.covers for g in grid if g.covers] == [3]
    assert next(g for g in grid if g.covers).start_at == local(13, 0)


def test_unaligned_reservation_spans_an_extra_slot():
    grid = generate_slots(SERVICE_DAY, time(11, 0), time(22, 0), 90, TZ)

    # 11:10-12:40 touches 11:00 through 12:30.
    map_load(grid, [reservation_at(local(11, 10), 2)], 90)

    assert sum(1 for g in grid if g.covers == 2) == 7


def test_overlapping_reservations_accumulate():
    grid = generate_slots(SERVICE_DAY, time(11, 0), time(22, 0), 90, TZ)

    map_load(grid, [reservation_at(local(18, 0), 4), reservation_at(local(18, 30), 6)], 90)

    covers = {g.start_at.time(): g.covers for g in grid}
    assert covers[time(17, 45)] == 0
    assert covers[time(18, 15)] == 4
    assert covers[time(18, 30)] == 10
    assert covers[time(19, 15)] == 10
    assert covers[time(19, 30)] == 6
    assert covers[time(20, 0)] == 0


def test_reservation_before_opening_still_occupies_first_slots():
    grid = generate_slots(SERVICE_DAY, time(11, 0), time(22, 0), 90, TZ)

    map_load(grid, [reservation_at(local(10, 0), 5)], 90)

    assert [g.start_at.time() for g in grid if g.covers] == [time(11, 0), time(11, 15)]


def test_utc_reservations_map_onto_local_grid():
    grid = generate_slots(SERVICE_DAY, time(11, 0), time(22, 0), 90, TZ)

    # 19:00 EST
    utc_start = datetime(2025, 11, 6, 0, 0, tzinfo=ZoneInfo("UTC"))
    map_load(grid, [reservation_at(utc_start, 2)], 30)

    assert [g.start_at.time() for g in grid if g.covers] == [time(19, 0), time(19, 15)]


# Scoring


def test_capacity_cap_defaults_to_thirty_five_percent():
    assert capacity_cap(50) == 17
    assert capacity_cap(50, override=10) == 10
    assert capacity_cap(2) == 0


def test_scenario_b_full_slot_is_dropped():
    slots = score_slots(
        [grid_slot(local(18, 0), covers=10), grid_slot(local(18, 15), covers=9)],
        cap=10,
        total_seats=30,
        avg_dining_duration=90,
        now=NOW,
    )

    assert [s.start_at for s in slots] == [local(18, 15)]
    assert slots[0].available_covers == 1


def test_overbooked_slot_is_dropped():
    assert score_one(grid_slot(local(18, 0), covers=14), NOW) == []


def test_scenario_c_far_low_load_is_recommended_high():
    slot, = score_one(grid_slot(local(19, 45), covers=2), now=local(16, 45))

    assert slot.tier is SlotTier.RECOMMENDED
    assert slot.confidence is Confidence.HIGH
    assert slot.minutes_until == 180


def test_scenario_d_same_day_downgrades_to_med():
    slot, = score_one(grid_slot(local(19, 45), covers=2), now=local(19, 0))

    assert slot.tier is SlotTier.RECOMMENDED
    assert slot.confidence is Confidence.MED
    assert slot.minutes_until == 45


@pytest.mark.parametrize(
    "covers, now, tier, confidence",
    [
        # 60% load, 4 of 10 left
        (6, local(12, 0, day=SERVICE_DAY - timedelta(days=1)), SlotTier.AVAILABLE, Confidence.HIGH),
        (6, local(17, 30), SlotTier.AVAILABLE, Confidence.LOW),
        # 80% load, 2 of 10 left
        (8, local(12, 0, day=SERVICE_DAY - timedelta(days=1)), SlotTier.FLEXIBLE, Confidence.MED),
        (8, local(17, 30), SlotTier.FLEXIBLE, Confidence.LOW),
        (8, local(18, 30), SlotTier.FLEXIBLE, Confidence.LOW),
    ],
)
def test_tiers_and_confidence(covers, now, tier, confidence):
    slot, = score_one(grid_slot(local(19, 0), covers=covers), now=now)

    assert slot.tier is tier
    assert slot.confidence is confidence


@pytest.mark.parametrize("hour, minute", [(10, 30), (22, 0)])
def test_early_and_late_slots_lose_high_confidence(hour, minute):
    slot, = score_one(grid_slot(local(hour, minute)), now=NOW)

    assert slot.tier is SlotTier.RECOMMENDED
    assert slot.confidence is Confidence.MED


def test_late_rule_does_not_stack_on_same_day_downgrade():
    slot, = score_one(grid_slot(local(22, 0)), now=local(21, 0))

    assert slot.confidence is Confidence.MED


def test_percentages_are_rounded():
    slot, = score_slots(
        [grid_slot(local(12, 0), covers=4)],
        cap=17,
        total_seats=50,
        avg_dining_duration=90,
        now=NOW,
    )

    assert slot.load_percentage == 23.5
    assert slot.utilization_percentage == 8.0
    assert slot.available_covers == 13
    assert slot.max_covers_per_slot == 17


def test_slots_sorted_by_tier_then_time():
    grid = [
        grid_slot(local(12, 0), covers=8),
        grid_slot(local(12, 15), covers=0),
        grid_slot(local(12, 30), covers=6),
        grid_slot(local(12, 45), covers=8),
        grid_slot(local(13, 0), covers=1),
        grid_slot(local(13, 15), covers=6),
    ]

    slots = score_slots(grid, cap=10, total_seats=30, avg_dining_duration=90, now=NOW)

    assert [(s.tier, s.start_at.time()) for s in slots] == [
        (SlotTier.RECOMMENDED, time(12, 15)),
        (SlotTier.RECOMMENDED, time(13, 0)),
        (SlotTier.AVAILABLE, time(12, 30)),
        (SlotTier.AVAILABLE, time(13, 15)),
        (SlotTier.FLEXIBLE, time(12, 0)),
        (SlotTier.FLEXIBLE, time(12, 45)),
    ]


def test_zero_capacity_scores_nothing():
    assert score_one(grid_slot(local(12, 0)), now=NOW, cap=0) == []
