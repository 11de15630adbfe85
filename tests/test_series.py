"""
日序列补零与合并测试
"""
from datetime import timedelta

import pytest

from backoffice.ops_metrics.series import daily_partial, fill_series, merge_series, totals_of
from backoffice.ops_metrics.timewindow import TimeWindowCalculator

from conftest import NOW

CALENDAR = TimeWindowCalculator(9)
WINDOW = CALENDAR.trailing_window(NOW, 3)


class TestSeries:
    """补零、合并与窗口边界"""

    def test_fill_series_zero_fills(self):
        points = fill_series(WINDOW, {"2024-03-14": 2})

        assert [p.date for p in points] == ["2024-03-13", "2024-03-14", "2024-03-15"]
        assert [p.value for p in points] == [0, 2, 0]

    def test_fill_series_rejects_stray_dates(self):
        with pytest.raises(ValueError):
            fill_series(WINDOW, {"2024-03-01": 1})

    def test_merge_series_totals(self):
        points = merge_series(
            WINDOW,
            {
                "orders": {"2024-03-13": 1000, "2024-03-15": 500},
                "applications": {"2024-03-15": 300},
                "packages": {},
            },
        )

        assert [p.total for p in points] == [1000, 0, 800]
        assert points[2].as_dict() == {
            "date": "2024-03-15",
            "orders": 500,
            "applications": 300,
            "packages": 0,
            "total": 800,
        }
        assert [p.value for p in totals_of(points)] == [1000, 0, 800]

    def test_daily_partial_bounds(self):
        stamps = [
            WINDOW.start_at - timedelta(seconds=1),
            WINDOW.start_at,
            NOW,
            NOW + timedelta(seconds=1),
            None,
        ]

        partial = daily_partial(stamps, WINDOW, NOW, lambda stamp: stamp, CALENDAR.date_key)

        assert partial == {"2024-03-13": 1, "2024-03-15": 1}

    def test_daily_partial_sums_values(self):
        rows = [(NOW, 100), (NOW - timedelta(hours=1), 250)]

        partial = daily_partial(rows, WINDOW, NOW, lambda row: row[0], CALENDAR.date_key, lambda row: row[1])

        assert partial == {"2024-03-15": 350}
