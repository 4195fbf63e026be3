"""
Restaurant configuration: seat count, dining duration and service hours.

RestaurantConfig is the value the availability engine computes against.
Providers resolve it either from the restaurant / hours_rule tables or from a
plain document (both the hoursOfOperation and the legacy hours layouts).
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lineup.app.core.config import settings
from lineup.app.db.tables import hours_rule, restaurant

logger = logging.getLogger(__name__)

DEFAULT_AVG_DINING_MINUTES = settings.DEFAULT_AVG_DINING_MINUTES

# date.weekday() order
WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass(frozen=True)
class ServiceHours:
    open: time
    close: time


@dataclass(frozen=True)
class Capacity:
    total_seats: int
    avg_dining_duration: int


@dataclass(frozen=True)
class RestaurantConfig:
    total_seats: int | None = None
    capacity: int | None = None
    avg_dining_duration: int = DEFAULT_AVG_DINING_MINUTES
    timezone: str = "UTC"
    hours: Mapping[int, ServiceHours] = field(default_factory=dict)

    @property
    def seats(self) -> int:
        return self.total_seats or self.capacity or 0

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def service_hours(self, day: date) -> ServiceHours | None:
        return self.hours.get(day.weekday())


def parse_clock_time(value: str | time, meridiem: str | None = None) -> time:
    """Parse "HH:MM" (24-hour) or "h:MM" with an AM/PM meridiem."""
    if isinstance(value, time):
        return value
    hours_str, _, minutes_str = value.strip().partition(":")
    hour = int(hours_str)
    minute = int(minutes_str or 0)
    if meridiem:
        meridiem = meridiem.strip().upper()
        if meridiem == "PM" and hour != 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0
    return time(hour, minute)


def config_from_document(doc: Mapping[str, Any]) -> RestaurantConfig:
    """Build a config from a restaurant document.

    Accepts ``hoursOfOperation`` ({"Monday": {"openTime": "11:00", "openMeridiem": "AM",
    "closeTime": "10:00", "closeMeridiem": "PM"}}) and the legacy ``hours``
    ({"monday": {"open": "11:00", "close": "22:00"}}). Days without both ends are closed.
    """
    hours: dict[int, ServiceHours] = {}
    operation = doc.get("hoursOfOperation") or {}
    legacy = doc.get("hours") or {}
    for weekday, name in enumerate(WEEKDAY_NAMES):
        day_hours = operation.get(name)
        if day_hours and day_hours.get("openTime") and day_hours.get("closeTime"):
            hours[weekday] = ServiceHours(
                open=parse_clock_time(day_hours["openTime"], day_hours.get("openMeridiem") or "AM"),
                close=parse_clock_time(day_hours["closeTime"], day_hours.get("closeMeridiem") or "PM"),
            )
            continue
        day_hours = legacy.get(name.lower())
        if day_hours and day_hours.get("open") and day_hours.get("close"):
            hours[weekday] = ServiceHours(
                open=parse_clock_time(day_hours["open"]),
                close=parse_clock_time(day_hours["close"]),
            )

    return RestaurantConfig(
        total_seats=doc.get("totalSeats"),
        capacity=doc.get("capacity"),
        avg_dining_duration=doc.get("avgDiningDuration") or DEFAULT_AVG_DINING_MINUTES,
        timezone=doc.get("timezone") or "UTC",
        hours=hours,
    )


class RestaurantConfigProvider(Protocol):
    async def get_service_hours(self, restaurant_id: str, day: date) -> ServiceHours | None: ...

    async def get_capacity(self, restaurant_id: str) -> Capacity | None: ...

    async def get_config(self, restaurant_id: str) -> RestaurantConfig | None: ...


class _ConfigBackedProvider:
    """get_service_hours / get_capacity in terms of get_config."""

    async def get_config(self, restaurant_id: str) -> RestaurantConfig | None:
        raise NotImplementedError

    async def get_service_hours(self, restaurant_id: str, day: date) -> ServiceHours | None:
        config = await self.get_config(restaurant_id)
        return config.service_hours(day) if config else None

    async def get_capacity(self, restaurant_id: str) -> Capacity | None:
        config = await self.get_config(restaurant_id)
        if config is None:
            return None
        return Capacity(total_seats=config.seats, avg_dining_duration=config.avg_dining_duration)


class StaticRestaurantConfigProvider(_ConfigBackedProvider):
    def __init__(self, configs: Mapping[str, RestaurantConfig]) -> None:
        self._configs = dict(configs)

    async def get_config(self, restaurant_id: str) -> RestaurantConfig | None:
        return self._configs.get(restaurant_id)


class SqlRestaurantConfigProvider(_ConfigBackedProvider):
    """Reads the restaurant and hours_rule tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_config(self, restaurant_id: str) -> RestaurantConfig | None:
        async with self._session_factory() as session:
            row = (
                await session.execute(select(restaurant).where(restaurant.c.id == restaurant_id))
            ).mappings().one_or_none()
            if row is None:
                logger.debug("No restaurant row for %s", restaurant_id)
                return None
            rules = await session.execute(
                select(hours_rule).where(hours_rule.c.restaurant_id == restaurant_id)
            )
            hours = {
                rule["day_of_week"]: ServiceHours(open=rule["open_time"], close=rule["close_time"])
                for rule in rules.mappings()
            }

        return RestaurantConfig(
            total_seats=row["total_seats"],
            capacity=row["capacity"],
            avg_dining_duration=row["avg_dining_minutes"] or DEFAULT_AVG_DINING_MINUTES,
            timezone=row["timezone"] or "UTC",
            hours=hours,
        )
