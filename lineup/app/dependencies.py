"""FastAPI dependency wiring for the ledger, the engine and restaurant configuration."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lineup.app.core.clock import Clock, get_clock
from lineup.app.db.session import get_session_factory
from lineup.app.services.availability.engine import AvailabilityEngine
from lineup.app.services.ledger.service import ReservationLedger
from lineup.app.services.ledger.store import LedgerStore
from lineup.app.services.restaurant_config import RestaurantConfigProvider, SqlRestaurantConfigProvider


def get_ledger(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> ReservationLedger:
    return ReservationLedger(LedgerStore(session_factory), clock)


def get_availability_engine(
    ledger: ReservationLedger = Depends(get_ledger),
    clock: Clock = Depends(get_clock),
) -> AvailabilityEngine:
    return AvailabilityEngine(ledger, clock)


def get_config_provider(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> RestaurantConfigProvider:
    return SqlRestaurantConfigProvider(session_factory)
