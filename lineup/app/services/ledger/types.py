from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ReservationStatus(str, Enum):
    BOOKED = "BOOKED"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    SEATED = "SEATED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, new_status: ReservationStatus) -> bool:
        """Forward along the happy path (skips allowed), or out to CANCELLED/NO_SHOW."""
        if self.is_terminal:
            return False
        if new_status in (ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW):
            return True
        return HAPPY_PATH.index(new_status) > HAPPY_PATH.index(self)


HAPPY_PATH = (
    ReservationStatus.BOOKED,
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
    ReservationStatus.SEATED,
    ReservationStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset(
    {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW}
)

# Statuses that no longer occupy a table.
INACTIVE_STATUSES = TERMINAL_STATUSES


class SourceSystem(str, Enum):
    NATIVE = "NATIVE"
    EXTERNAL_OPENTABLE = "EXTERNAL_OPENTABLE"
    EXTERNAL_RESY = "EXTERNAL_RESY"
    EXTERNAL_TOAST = "EXTERNAL_TOAST"

    @property
    def is_external(self) -> bool:
        return self is not SourceSystem.NATIVE


@dataclass(frozen=True)
class ReservationSource:
    system: SourceSystem
    external_id: str | None = None


@dataclass(frozen=True)
class GuestInfo:
    diner_id: str | None = None
    diner_name: str | None = None
    phone: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class StatusChange:
    """One immutable entry of a reservation's status log."""

    status: ReservationStatus
    previous_status: ReservationStatus | None
    timestamp: datetime
    source: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Reconciliation:
    last_reconciled_at: datetime | None = None
    reconciliation_status: str = "PENDING"
    divergence_detected: bool = False
    details: dict[str, Any] | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "lastReconciledAt": self.last_reconciled_at.isoformat() if self.last_reconciled_at else None,
            "reconciliationStatus": self.reconciliation_status,
            "divergenceDetected": self.divergence_detected,
            "details": self.details,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any] | None) -> Reconciliation:
        doc = doc or {}
        last = doc.get("lastReconciledAt")
        return cls(
            last_reconciled_at=datetime.fromisoformat(last) if last else None,
            reconciliation_status=doc.get("reconciliationStatus", "PENDING"),
            divergence_detected=bool(doc.get("divergenceDetected", False)),
            details=doc.get("details"),
        )


@dataclass(frozen=True)
class Reservation:
    id: str
    restaurant_id: str
    start_at: datetime
    party_size: int
    source: ReservationSource
    guest: GuestInfo
    status: ReservationStatus
    created_at: datetime
    updated_at: datetime
    status_history: tuple[StatusChange, ...] = ()
    reconciliation: Reconciliation = field(default_factory=Reconciliation)
    metadata: dict[str, Any] = field(default_factory=dict)
    version: int = 1

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES
