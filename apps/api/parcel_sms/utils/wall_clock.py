"""Timezone-aware wall clock for pickup scheduling.

All instants are stored and compared in UTC. The civil projection
(weekday, date, time of day, ISO week) is computed in the business
timezone, so calendar boundaries follow DST transitions:

- A civil time inside a spring-forward gap resolves to a real instant,
  shifted forward by the gap length.
- A civil time inside a fall-back overlap exists twice; ``fold=0`` picks
  the earlier occurrence and ``fold=1`` the later one.

Clocks are injected into the services that need "now". ``FixedClock``
is used by tests and backfills.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

END_OF_DAY = time(23, 59, 59, 999999)


class ParseError(ValueError):
    """Raised when an instant or civil time cannot be parsed."""


def _load_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ParseError(f"Unknown timezone: {tz_name}") from exc


def _coerce_utc(value: object) -> datetime:
    """Convert a datetime, ISO string or epoch seconds to an aware UTC datetime."""
    if isinstance(value, CivilTime):
        return value.utc
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, bool):
        raise ParseError(f"Cannot interpret {value!r} as an instant")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise ParseError(f"Epoch value out of range: {value!r}") from exc
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ParseError("Empty timestamp")
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ParseError(f"Invalid ISO timestamp: {value!r}") from exc
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ParseError(f"Cannot interpret {value!r} as an instant")


def _parse_time_of_day(value: time | str) -> time:
    if isinstance(value, time):
        return value
    try:
        hours, minutes = value.strip().split(":")[:2]
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError) as exc:
        raise ParseError(f"Invalid time of day: {value!r}") from exc


class CivilTime:
    """An absolute instant together with its civil projection."""

    __slots__ = ("utc", "local", "_tz")

    def __init__(self, instant: datetime, tz: ZoneInfo):
        self.utc = _coerce_utc(instant)
        self.local = self.utc.astimezone(tz)
        self._tz = tz

    def __repr__(self) -> str:
        return f"CivilTime({self.local.isoformat()})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CivilTime):
            return NotImplemented
        return self.utc == other.utc

    def __lt__(self, other: CivilTime) -> bool:
        return self.utc < other.utc

    def __hash__(self) -> int:
        return hash(self.utc)

    # -------------------------------------------------------------------------
    # Civil projection
    # -------------------------------------------------------------------------

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    @property
    def weekday_name(self) -> str:
        return WEEKDAY_NAMES[self.local.weekday()]

    @property
    def date(self) -> date:
        return self.local.date()

    @property
    def time_of_day(self) -> str:
        return self.local.strftime("%H:%M")

    @property
    def iso_year(self) -> int:
        return self.local.isocalendar().year

    @property
    def iso_week(self) -> int:
        return self.local.isocalendar().week

    def format(self, fmt: str) -> str:
        """strftime in the civil timezone."""
        return self.local.strftime(fmt)

    # -------------------------------------------------------------------------
    # Boundaries (civil terms, converted back to absolute instants)
    # -------------------------------------------------------------------------

    def _at(self, day: date, time_of_day: time) -> CivilTime:
        return CivilTime(datetime.combine(day, time_of_day, tzinfo=self._tz), self._tz)

    def start_of_day(self) -> CivilTime:
        return self._at(self.date, time.min)

    def end_of_day(self) -> CivilTime:
        return self._at(self.date, END_OF_DAY)

    def start_of_week(self) -> CivilTime:
        monday = self.date - timedelta(days=self.local.weekday())
        return self._at(monday, time.min)

    def end_of_week(self) -> CivilTime:
        sunday = self.date + timedelta(days=6 - self.local.weekday())
        return self._at(sunday, END_OF_DAY)

    # -------------------------------------------------------------------------
    # Arithmetic and comparison (absolute instants only)
    # -------------------------------------------------------------------------

    def add_minutes(self, minutes: int | float) -> CivilTime:
        return CivilTime(self.utc + timedelta(minutes=minutes), self._tz)

    def is_before(self, other: object) -> bool:
        return self.utc < _coerce_utc(other)

    def is_after(self, other: object) -> bool:
        return self.utc > _coerce_utc(other)

    def is_between(self, start: object, end: object) -> bool:
        """Inclusive on both ends."""
        return _coerce_utc(start) <= self.utc <= _coerce_utc(end)


class WallClock(ABC):
    """Base clock. Subclasses provide the current UTC instant."""

    def __init__(self, tz_name: str | None = None):
        if tz_name is None:
            from parcel_sms.core.config import settings

            tz_name = settings.BUSINESS_TIMEZONE
        self.tz = _load_zone(tz_name)

    @abstractmethod
    def _utcnow(self) -> datetime:
        ...

    def now(self) -> CivilTime:
        return CivilTime(self._utcnow(), self.tz)

    def from_instant(self, value: object) -> CivilTime:
        """Project an instant (datetime, ISO string or epoch seconds)."""
        return CivilTime(_coerce_utc(value), self.tz)

    def at_local(self, day: date | str, time_of_day: time | str, *, fold: int = 0) -> CivilTime:
        """Resolve a civil date and time of day to an instant."""
        if isinstance(day, str):
            try:
                day = date.fromisoformat(day.strip())
            except ValueError as exc:
                raise ParseError(f"Invalid date: {day!r}") from exc
        local = datetime.combine(day, _parse_time_of_day(time_of_day), tzinfo=self.tz)
        return CivilTime(local.replace(fold=fold), self.tz)


class SystemClock(WallClock):
    """Clock backed by the system time."""

    def _utcnow(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(WallClock):
    """Clock frozen at a given instant; advance it manually."""

    def __init__(self, instant: object, tz_name: str | None = None):
        super().__init__(tz_name)
        self._instant = _coerce_utc(instant)

    def _utcnow(self) -> datetime:
        return self._instant

    def set(self, instant: object) -> None:
        self._instant = _coerce_utc(instant)

    def advance(self, *, minutes: float = 0, hours: float = 0, days: float = 0) -> None:
        self._instant += timedelta(minutes=minutes, hours=hours, days=days)
