"""
Growth Calculator

Compares a window's totals against the equal-length window immediately
before it.
"""

from datetime import datetime, timedelta, timezone

from src.analytics.models import MetricsSnapshot, PeriodTotals, ReportWindow

# Sentinel for activity with no baseline; not a literal percentage
NEW_ACTIVITY_PCT = 100.0


def change_pct(current: float, previous: float) -> float:
    """
    Percentage change from previous to current.

    No baseline and no data is 0; activity with no baseline is the
    NEW_ACTIVITY_PCT sentinel.
    """
    if previous == 0:
        return 0.0 if current == 0 else NEW_ACTIVITY_PCT
    return (current - previous) / previous * 100


def trailing_window(
    current_start: datetime,
    current_end: datetime,
    window_length: timedelta,
) -> ReportWindow:
    """Pair the current window with [current_start - length, current_start)"""
    # Elapsed time, so a DST shift between the windows does not skew the length
    prior_start = (current_start.astimezone(timezone.utc) - window_length).astimezone(current_start.tzinfo)
    return ReportWindow(
        current_start=current_start,
        current_end=current_end,
        prior_start=prior_start,
        prior_end=current_start,
    )


class GrowthCalculator:
    """Builds the headline snapshot from current and prior totals"""

    def compare(self, current: PeriodTotals, previous: PeriodTotals) -> MetricsSnapshot:
        return MetricsSnapshot(
            total_visitors=current.visitors,
            visitors_change_pct=change_pct(current.visitors, previous.visitors),
            total_revenue=current.revenue,
            revenue_change_pct=change_pct(current.revenue, previous.revenue),
            total_new_users=current.new_users,
            new_users_change_pct=change_pct(current.new_users, previous.new_users),
            total_page_views=current.page_views,
            page_views_change_pct=change_pct(current.page_views, previous.page_views),
        )
