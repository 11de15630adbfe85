from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .aggregators import DistributionRow
from .dataset import iso_or_none
from .queues import QueueItem, QueueSlice
from .series import RevenueBreakdownPoint, SeriesPoint

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class SeriesBlock:
    days: int
    from_ymd: str
    to_ymd: str
    daily_revenue: List[SeriesPoint]
    daily_revenue_by_source: List[RevenueBreakdownPoint]
    daily_orders: List[SeriesPoint]
    daily_applications: List[SeriesPoint]
    daily_signups: List[SeriesPoint]
    daily_reviews: List[SeriesPoint]


@dataclass(frozen=True)
class DashboardSnapshot:
    """
    One point-in-time view of operations.

    Every block was computed against windows derived from ``generated_at``.
    ``cache_control`` is the freshness directive recommended to the caller and
    is not part of the serialized payload.
    """

    generated_at: datetime
    series: SeriesBlock
    kpi: Dict[str, Dict[str, Any]]
    dist: Dict[str, List[DistributionRow]]
    inventory_list: Dict[str, List[Dict[str, Any]]]
    top: Dict[str, List[Dict[str, Any]]]
    queue_details: Dict[str, QueueSlice]
    recent: Dict[str, List[Dict[str, Any]]]
    settlements: Dict[str, Any]
    version: int = SNAPSHOT_VERSION
    cache_control: Optional[str] = field(default=None, compare=False)

    def as_dict(self) -> Dict[str, Any]:
        """
        Convert the snapshot into a JSON-serialisable structure.

        Keys are camelCase to match what the admin dashboard reads.
        """

        def _serialize(obj: Any) -> Any:
            if isinstance(obj, SeriesBlock):
                return {
                    "days": obj.days,
                    "fromYmd": obj.from_ymd,
                    "toYmd": obj.to_ymd,
                    "dailyRevenue": _serialize(obj.daily_revenue),
                    "dailyRevenueBySource": _serialize(obj.daily_revenue_by_source),
                    "dailyOrders": _serialize(obj.daily_orders),
                    "dailyApplications": _serialize(obj.daily_applications),
                    "dailySignups": _serialize(obj.daily_signups),
                    "dailyReviews": _serialize(obj.daily_reviews),
                }
            if isinstance(obj, QueueSlice):
                return [_serialize(item) for item in obj.items]
            if isinstance(obj, (QueueItem, SeriesPoint, RevenueBreakdownPoint, DistributionRow)):
                return obj.as_dict()
            if isinstance(obj, datetime):
                return iso_or_none(obj)
            if isinstance(obj, Mapping):
                return {key: _serialize(value) for key, value in obj.items()}
            if isinstance(obj, Iterable) and not isinstance(obj, (str, bytes)):
                return [_serialize(item) for item in obj]
            return obj

        return {
            "version": self.version,
            "generatedAt": iso_or_none(self.generated_at),
            "series": _serialize(self.series),
            "kpi": _serialize(self.kpi),
            "dist": _serialize(self.dist),
            "inventoryList": _serialize(self.inventory_list),
            "top": _serialize(self.top),
            "queueDetails": _serialize(self.queue_details),
            "recent": _serialize(self.recent),
            "settlements": _serialize(self.settlements),
        }
