"""
Runtime configuration for the operational metrics engine.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel


class MetricsConfig(BaseModel):
    utc_offset_hours: int = 9
    """固定时区偏移（KST = UTC+9），不是 IANA 时区规则"""

    chart_days: int = 30
    """趋势图的窗口天数"""

    kpi_days: int = 7
    """KPI 卡片统计的最近天数"""

    cache_max_age_seconds: int = 10
    """建议给调用方的共享缓存时间（秒）"""

    recent_limit: int = 5
    """每个实体 "最近记录" 列表的条数"""

    inventory_list_limit: int = 8
    """库存预警列表条数"""

    database_url: Optional[str] = None

    @property
    def cache_control(self) -> str:
        return f"private, max-age=0, s-maxage={self.cache_max_age_seconds}"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_metrics_config() -> MetricsConfig:
    cfg = MetricsConfig()
    return MetricsConfig(
        utc_offset_hours=_env_int("OPS_METRICS_UTC_OFFSET_HOURS", cfg.utc_offset_hours),
        chart_days=_env_int("OPS_METRICS_CHART_DAYS", cfg.chart_days),
        kpi_days=_env_int("OPS_METRICS_KPI_DAYS", cfg.kpi_days),
        cache_max_age_seconds=_env_int("OPS_METRICS_CACHE_MAX_AGE", cfg.cache_max_age_seconds),
        recent_limit=_env_int("OPS_METRICS_RECENT_LIMIT", cfg.recent_limit),
        inventory_list_limit=_env_int("OPS_METRICS_INVENTORY_LIST_LIMIT", cfg.inventory_list_limit),
        database_url=os.getenv("OPS_METRICS_DATABASE_URL", cfg.database_url),
    )
