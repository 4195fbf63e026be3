from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SlotTier(str, Enum):
    RECOMMENDED = "RECOMMENDED"
    AVAILABLE = "AVAILABLE"
    FLEXIBLE = "FLEXIBLE"

    @property
    def rank(self) -> int:
        return TIER_RANK[self]


TIER_RANK = {
    SlotTier.RECOMMENDED: 0,
    SlotTier.AVAILABLE: 1,
    SlotTier.FLEXIBLE: 2,
}


class Confidence(str, Enum):
    HIGH = "HIGH"
    MED = "MED"
    LOW = "LOW"

    def downgraded(self) -> Confidence:
        if self is Confidence.HIGH:
            return Confidence.MED
        return Confidence.LOW


@dataclass
class GridSlot:
    """Load accumulator for one 15-minute window of the day's grid."""

    start_at: datetime
    end_at: datetime
    covers: int = 0


@dataclass(frozen=True)
class Slot:
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

    def contains(self, instant: datetime) -> bool:
        return self.start_at <= instant < self.end_at


@dataclass(frozen=True)
class AvailabilityOptions:
    max_covers_per_15_min: int | None = None
    avg_dining_duration: int | None = None


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    slot: Slot | None
    reason: str | None
