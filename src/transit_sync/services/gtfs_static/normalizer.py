"""GTFS data normalizer - converts raw CSV rows into typed records."""

from __future__ import annotations

import dataclasses
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any, Callable, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from transit_sync.errors import RowError
from transit_sync.logging import get_logger
from transit_sync.services.gtfs_static.records import DATE, FLOAT, INT, TIME

if TYPE_CHECKING:
    from transit_sync.services.gtfs_static.parser import Row

logger = get_logger(__name__)

R = TypeVar("R")

LOCAL_NOON = time(12, 0)


class TimeParseError(ValueError):
    """Raised when a GTFS time string cannot be parsed."""


def parse_gtfs_time(time_str: str | None) -> int | None:
    """Parse a GTFS time string (HH:MM:SS) to seconds from midnight.

    Supports times >= 24:00:00 for trips spanning past midnight. Empty input
    yields None.

    Examples:
        "08:30:00" -> 30600
        "25:30:00" -> 91800

    Raises:
        TimeParseError: If the format is invalid.
    """
    if time_str is None:
        return None
    time_str = time_str.strip()
    if not time_str:
        return None

    parts = time_str.split(":")
    if len(parts) != 3:
        msg = f"Invalid GTFS time format: {time_str!r} (expected HH:MM:SS)"
        raise TimeParseError(msg)

    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(parts[2])
    except ValueError as exc:
        msg = f"Non-numeric components in GTFS time: {time_str!r}"
        raise TimeParseError(msg) from exc

    if minutes < 0 or minutes > 59 or seconds < 0 or seconds > 59:
        msg = f"Invalid minutes/seconds in GTFS time: {time_str!r}"
        raise TimeParseError(msg)

    if hours < 0:
        msg = f"Negative hours in GTFS time: {time_str!r}"
        raise TimeParseError(msg)

    return hours * 3600 + minutes * 60 + seconds


def parse_gtfs_date(date_str: str, tz: ZoneInfo) -> int:
    """Parse a GTFS service date (YYYYMMDD) to epoch seconds at local noon.

    Noon is unambiguous on DST transition days, so the same service date
    always maps to the same instant for a given timezone.

    Raises:
        ValueError: If the date is malformed.
    """
    value = date_str.strip()
    if len(value) != 8 or not value.isdigit():
        msg = f"Invalid GTFS date: {date_str!r} (expected YYYYMMDD)"
        raise ValueError(msg)
    day = date(int(value[:4]), int(value[4:6]), int(value[6:]))
    return int(datetime.combine(day, LOCAL_NOON, tzinfo=tz).timestamp())


def parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        number = float(value)
        if not number.is_integer():
            raise
        return int(number)


def resolve_timezone(name: str | None, fallback: str = "UTC") -> ZoneInfo:
    """Return the named zone, or the fallback when the name is empty or unknown."""
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown agency timezone, using fallback", timezone=name, fallback=fallback)
    return ZoneInfo(fallback)


def required_columns(record_type: type) -> tuple[str, ...]:
    """Header columns a file must carry for rows of ``record_type`` to load."""
    return tuple(f.name for f in dataclasses.fields(record_type) if f.metadata.get("required"))


class RowNormalizer:
    """Converts parsed rows into typed records for one feed version.

    Rows missing a required field, or whose required field cannot be
    converted, raise ``RowError``. An optional field that cannot be
    converted is set to None and counted in ``nulled_fields``.
    """

    def __init__(self, tz: ZoneInfo) -> None:
        self.tz = tz
        self.nulled_fields = 0
        self._plans: dict[type, list[tuple[str, Callable[[str], Any] | None, bool, Any]]] = {}

    def _plan(self, record_type: type) -> list[tuple[str, Callable[[str], Any] | None, bool, Any]]:
        plan = self._plans.get(record_type)
        if plan is None:
            converters: dict[str, Callable[[str], Any]] = {
                INT: parse_int,
                FLOAT: float,
                DATE: lambda value: parse_gtfs_date(value, self.tz),
                TIME: parse_gtfs_time,
            }
            plan = []
            for f in dataclasses.fields(record_type):
                default = f.default if f.default is not dataclasses.MISSING else None
                plan.append(
                    (
                        f.name,
                        converters.get(f.metadata.get("kind", "")),
                        bool(f.metadata.get("required")),
                        default,
                    )
                )
            self._plans[record_type] = plan
        return plan

    def normalize(self, record_type: type[R], row: Row) -> R:
        values: dict[str, Any] = {}
        for name, convert, required, default in self._plan(record_type):
            raw = row.get(name)
            if raw is None:
                if required:
                    msg = f"Missing required field {name}"
                    raise RowError(msg)
                values[name] = default
                continue
            if convert is None:
                values[name] = raw
                continue
            try:
                values[name] = convert(raw)
            except ValueError as exc:
                if required:
                    msg = f"Invalid value for {name}: {raw!r}"
                    raise RowError(msg) from exc
                self.nulled_fields += 1
                values[name] = default
        return record_type(**values)
