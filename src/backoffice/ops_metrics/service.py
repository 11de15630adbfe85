from __future__ import annotations

import asyncio
import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from .aggregators import AGGREGATORS, AggregationContext, SourceBundle
from .config import MetricsConfig
from .dataset import Number
from .models import DashboardSnapshot, SeriesBlock
from .queues import EMPTY_QUEUE, QueueSlice, merge_queues
from .repository import RecordStore
from .series import fill_series, merge_series, totals_of
from .timewindow import TimeWindowCalculator

logger = logging.getLogger(__name__)

REVENUE_SOURCES = ("orders", "applications", "packages")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def average_order_value(revenue: Number, paid_count: int) -> int:
    if paid_count <= 0:
        return 0
    # half-up, not banker's rounding
    return math.floor(revenue / paid_count + 0.5)


class DashboardMetricsService:
    """
    Assembles the admin dashboard snapshot.

    ``now`` is captured once, before any aggregator runs, and every window and
    threshold is derived from it. The per-entity aggregators then run
    concurrently in worker threads; if any of them fails the whole build fails.
    """

    def __init__(
        self,
        store: RecordStore,
        config: Optional[MetricsConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.config = config or MetricsConfig()
        self.clock = clock
        self.calendar = TimeWindowCalculator(self.config.utc_offset_hours)

    def build_context(self, now: datetime) -> AggregationContext:
        return AggregationContext(
            now=now,
            calendar=self.calendar,
            chart=self.calendar.trailing_window(now, self.config.chart_days),
            kpi_since=now - timedelta(days=self.config.kpi_days),
            month_start=self.calendar.month_start(now),
            recent_limit=self.config.recent_limit,
            inventory_list_limit=self.config.inventory_list_limit,
        )

    async def build(self, now: Optional[datetime] = None) -> DashboardSnapshot:
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        ctx = self.build_context(now)
        started = time.perf_counter()
        bundles = await self._run_aggregators(ctx)
        snapshot = self._assemble(ctx, bundles)
        logger.debug(
            "Dashboard snapshot for %s built from %d sources in %.1f ms",
            now.isoformat(),
            len(bundles),
            (time.perf_counter() - started) * 1000,
        )
        return snapshot

    async def _run_aggregators(self, ctx: AggregationContext) -> Dict[str, SourceBundle]:
        names = list(AGGREGATORS)
        results = await asyncio.gather(
            *(asyncio.to_thread(AGGREGATORS[name], self.store, ctx) for name in names)
        )
        return dict(zip(names, results))

    def _assemble(self, ctx: AggregationContext, bundles: Dict[str, SourceBundle]) -> DashboardSnapshot:
        users = bundles["users"]
        orders = bundles["orders"]
        applications = bundles["applications"]
        rentals = bundles["rentals"]
        packages = bundles["packages"]
        reviews = bundles["reviews"]
        outbox = bundles["outbox"]
        inventory = bundles["inventory"]
        community = bundles["community"]

        revenue_by_source = merge_series(
            ctx.chart, {name: bundles[name].daily.get("revenue", {}) for name in REVENUE_SOURCES}
        )
        series = SeriesBlock(
            days=ctx.chart.days,
            from_ymd=ctx.chart.from_key,
            to_ymd=ctx.chart.to_key,
            daily_revenue=totals_of(revenue_by_source),
            daily_revenue_by_source=revenue_by_source,
            daily_orders=fill_series(ctx.chart, orders.daily["count"]),
            daily_applications=fill_series(ctx.chart, applications.daily["count"]),
            daily_signups=fill_series(ctx.chart, users.daily["count"]),
            daily_reviews=fill_series(ctx.chart, reviews.daily["count"]),
        )

        queue_details = self._merge_queue_details(bundles)
        kpi = {
            "users": users.totals,
            "orders": {
                **orders.totals,
                "aov7d": average_order_value(orders.totals["revenue7d"], orders.totals["paid7d"]),
            },
            "applications": applications.totals,
            "rentals": rentals.totals,
            "packages": packages.totals,
            "reviews": reviews.totals,
            "points": bundles["points"].totals,
            "community": community.totals,
            "inventory": inventory.totals,
            "queue": {
                "cancelRequests": queue_details["cancelRequests"].count,
                "shippingPending": queue_details["shippingPending"].count,
                "paymentPending24h": queue_details["paymentPending24h"].count,
                "rentalOverdue": queue_details["rentalOverdue"].count,
                "rentalDueSoon": queue_details["rentalDueSoon"].count,
                "passExpiringSoon": queue_details["passExpiringSoon"].count,
                "outboxQueued": outbox.totals["outboxQueued"],
                "outboxFailed": outbox.totals["outboxFailed"],
                "stringingAging3d": queue_details["stringingAging"].count,
            },
        }

        return DashboardSnapshot(
            generated_at=ctx.now,
            series=series,
            kpi=kpi,
            dist={**orders.distributions, **applications.distributions},
            inventory_list={"lowStock": inventory.details["lowStock"], "outOfStock": inventory.details["outOfStock"]},
            top={"products7d": orders.details["topProducts"], "brands7d": orders.details["topBrands"]},
            queue_details=queue_details,
            recent={
                "orders": orders.details["recent"],
                "applications": applications.details["recent"],
                "rentals": rentals.details["recent"],
                "reports": community.details["recentReports"],
            },
            settlements=bundles["settlements"].totals,
            cache_control=self.config.cache_control,
        )

    @staticmethod
    def _merge_queue_details(bundles: Dict[str, SourceBundle]) -> Dict[str, QueueSlice]:
        def gather(queue: str, *sources: str) -> QueueSlice:
            return merge_queues([bundles[source].queues.get(queue, EMPTY_QUEUE) for source in sources])

        return {
            "cancelRequests": gather("cancelRequests", "orders", "applications", "rentals", "packages"),
            "shippingPending": gather("shippingPending", "orders", "applications"),
            "paymentPending24h": gather("paymentPending24h", "orders", "applications", "rentals", "packages"),
            "rentalOverdue": gather("rentalOverdue", "rentals"),
            "rentalDueSoon": gather("rentalDueSoon", "rentals"),
            "passExpiringSoon": gather("passExpiringSoon", "passes"),
            "stringingAging": gather("stringingAging", "applications"),
            "outboxBacklog": gather("outboxBacklog", "outbox"),
        }
