from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar

from .dataset import Number
from .timewindow import TimeWindow

R = TypeVar("R")

PartialSeries = Dict[str, Number]


@dataclass(frozen=True)
class SeriesPoint:
    date: str
    value: Number

    def as_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "value": self.value}


@dataclass(frozen=True)
class RevenueBreakdownPoint:
    date: str
    parts: Dict[str, Number]
    total: Number

    def as_dict(self) -> Dict[str, Any]:
        return {"date": self.date, **self.parts, "total": self.total}


def daily_partial(
    records: Iterable[R],
    window: TimeWindow,
    end: datetime,
    timestamp: Callable[[R], Optional[datetime]],
    date_key: Callable[[datetime], str],
    value: Callable[[R], Number] = lambda _record: 1,
) -> PartialSeries:
    """
    Sum ``value`` per local day for records stamped inside ``[window.start_at, end]``.

    Records without a usable timestamp are skipped.
    """

    totals: Dict[str, Number] = defaultdict(int)
    for record in records:
        stamp = timestamp(record)
        if stamp is None or not (window.start_at <= stamp <= end):
            continue
        totals[date_key(stamp)] += value(record)
    return dict(totals)


def _check_keys(window: TimeWindow, partial: Mapping[str, Number], name: str) -> None:
    stray = sorted(key for key in partial if key not in window)
    if stray:
        raise ValueError(f"series {name!r} has dates outside the window: {stray}")


def fill_series(window: TimeWindow, partial: Mapping[str, Number]) -> List[SeriesPoint]:
    _check_keys(window, partial, "partial")
    return [SeriesPoint(date=key, value=partial.get(key, 0)) for key in window.date_keys]


def merge_series(window: TimeWindow, sources: Mapping[str, Mapping[str, Number]]) -> List[RevenueBreakdownPoint]:
    """
    Stack several per-source partial series into one row per date.

    ``total`` is the exact sum of that date's parts, so the combined line and the
    stacked view always agree.
    """

    for name, partial in sources.items():
        _check_keys(window, partial, name)
    points: List[RevenueBreakdownPoint] = []
    for key in window.date_keys:
        parts = {name: partial.get(key, 0) for name, partial in sources.items()}
        points.append(RevenueBreakdownPoint(date=key, parts=parts, total=sum(parts.values())))
    return points


def totals_of(points: Iterable[RevenueBreakdownPoint]) -> List[SeriesPoint]:
    return [SeriesPoint(date=point.date, value=point.total) for point in points]
