"""
Operational metrics for the backoffice admin dashboard.

The package turns the storefront's record stores (orders, stringing
applications, rentals, package orders, passes, reviews, users, community,
inventory, notification outbox, settlements) into one read-only,
single-instant snapshot: KPIs, zero-filled daily series, status
distributions, rankings and operator attention queues.
"""

from .aggregators import AGGREGATORS, AggregationContext, DistributionRow, SourceBundle  # noqa: F401
from .config import MetricsConfig, load_metrics_config  # noqa: F401
from .models import DashboardSnapshot, SeriesBlock  # noqa: F401
from .queues import QueueItem, QueueSlice  # noqa: F401
from .repository import (  # noqa: F401
    InMemoryRecordStore,
    RecordStore,
    RepositoryConfig,
    SQLRecordStore,
    StoreUnavailableError,
    build_repository_from_env,
)
from .series import RevenueBreakdownPoint, SeriesPoint  # noqa: F401
from .service import DashboardMetricsService  # noqa: F401
from .status import CancelStatus, PaymentStatus, normalize_cancel, normalize_payment  # noqa: F401
from .timewindow import TimeWindow, TimeWindowCalculator  # noqa: F401
