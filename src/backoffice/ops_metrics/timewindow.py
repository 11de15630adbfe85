from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Sequence, Tuple


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_date_key(day: date) -> str:
    return day.strftime("%Y-%m-%d")


@dataclass(frozen=True)
class TimeWindow:
    """
    A run of consecutive local calendar days ending on ``end_date``.

    ``start_at`` is the UTC instant of local midnight on ``start_date`` and is
    the lower bound every windowed query uses.
    """

    days: int
    start_date: date
    end_date: date
    date_keys: Tuple[str, ...]
    start_at: datetime

    def __post_init__(self) -> None:
        if len(self.date_keys) != self.days:
            raise ValueError(f"window of {self.days} days has {len(self.date_keys)} date keys")
        expected = tuple(to_date_key(self.start_date + timedelta(days=i)) for i in range(self.days))
        if self.date_keys != expected:
            raise ValueError("window date keys must be consecutive ascending local days")
        if self.date_keys and self.date_keys[-1] != to_date_key(self.end_date):
            raise ValueError("window date keys do not end on end_date")

    @property
    def from_key(self) -> str:
        return self.date_keys[0]

    @property
    def to_key(self) -> str:
        return self.date_keys[-1]

    def __contains__(self, key: object) -> bool:
        return key in self.date_keys


class TimeWindowCalculator:
    """
    Calendar math under one constant UTC offset.

    Local dates are plain ``datetime.date`` values and every day step is a
    whole-day ``timedelta`` on those dates, so boundaries never pick up
    partial-hour drift from the offset conversion.
    """

    def __init__(self, utc_offset_hours: int = 9) -> None:
        self.offset = timedelta(hours=utc_offset_hours)

    def local_date(self, instant: datetime) -> date:
        return (_as_utc(instant) + self.offset).date()

    def date_key(self, instant: datetime) -> str:
        return to_date_key(self.local_date(instant))

    def day_boundary(self, year: int, month: int, day: int) -> datetime:
        return datetime(year, month, day, tzinfo=timezone.utc) - self.offset

    def trailing_window(self, end_instant: datetime, days: int) -> TimeWindow:
        if days < 1:
            raise ValueError("a trailing window needs at least one day")
        end_date = self.local_date(end_instant)
        start_date = end_date - timedelta(days=days - 1)
        keys: Sequence[str] = [to_date_key(start_date + timedelta(days=i)) for i in range(days)]
        return TimeWindow(
            days=days,
            start_date=start_date,
            end_date=end_date,
            date_keys=tuple(keys),
            start_at=self.day_boundary(start_date.year, start_date.month, start_date.day),
        )

    def month_start(self, instant: datetime) -> datetime:
        local = self.local_date(instant)
        return self.day_boundary(local.year, local.month, 1)

    def month_key(self, instant: datetime) -> str:
        local = self.local_date(instant)
        return f"{local.year}{local.month:02d}"

    @staticmethod
    def shift_month_key(yyyymm: str, delta_months: int) -> str:
        if len(yyyymm) != 6 or not yyyymm.isdigit():
            raise ValueError(f"invalid month key: {yyyymm!r}")
        year, month = int(yyyymm[:4]), int(yyyymm[4:])
        if not 1 <= month <= 12:
            raise ValueError(f"invalid month key: {yyyymm!r}")
        new_year, new_month_index = divmod(year * 12 + (month - 1) + delta_months, 12)
        return f"{new_year}{new_month_index + 1:02d}"
