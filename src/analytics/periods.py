"""
Period Bucketizer

Calendar math producing aligned, contiguous time buckets.

Buckets are aligned to local midnight in the configured zone: days start at
midnight, weeks on Monday midnight, months on the first of the month.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import List, Optional

from src.analytics.models import Granularity, TimeBucket


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month"""
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def add_periods(day: date, granularity: Granularity, amount: int) -> date:
    """Shift a period-start date by a number of periods"""
    if granularity == Granularity.DAY:
        return day + timedelta(days=amount)
    elif granularity == Granularity.WEEK:
        return day + timedelta(weeks=amount)
    elif granularity == Granularity.MONTH:
        return add_months(day, amount)
    raise ValueError(f"Unknown granularity: {granularity}")


def align_to_period(day: date, granularity: Granularity) -> date:
    """Start date of the period containing a date"""
    if granularity == Granularity.DAY:
        return day
    elif granularity == Granularity.WEEK:
        return day - timedelta(days=day.weekday())
    elif granularity == Granularity.MONTH:
        return day.replace(day=1)
    raise ValueError(f"Unknown granularity: {granularity}")


def format_label(day: date, granularity: Granularity) -> str:
    if granularity == Granularity.MONTH:
        return f"{day.year:04d}-{day.month:02d}"
    return f"{day.month:02d}-{day.day:02d}"


class PeriodBucketizer:
    """
    Produces N ascending buckets ending in the period that contains "now".

    The final bucket's end is pushed past "now" so an event recorded at the
    instant of computation is never dropped: to the next midnight for days,
    and by a small margin past the period end for weeks and months.

    Example:
        bucketizer = PeriodBucketizer(tz=ZoneInfo("Asia/Seoul"))
        buckets = bucketizer.create(Granularity.DAY, 7, now)
    """

    def __init__(
        self,
        tz: Optional[tzinfo] = None,
        boundary_margin: timedelta = timedelta(seconds=1),
    ):
        self.tz = tz or timezone.utc
        self.boundary_margin = boundary_margin

    def local_midnight(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz)

    def localize(self, now: datetime) -> datetime:
        """Express an instant in the configured zone (naive values are taken as UTC)"""
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tz)

    def create(
        self,
        granularity: Granularity,
        count: int,
        now: datetime,
    ) -> List[TimeBucket]:
        """
        Generate `count` contiguous buckets.

        Args:
            granularity: Day, week or month
            count: Number of buckets (N >= 1)
            now: Reference instant

        Returns:
            Ascending list of half-open buckets
        """
        if count < 1:
            raise ValueError("Bucket count must be at least 1")

        local_now = self.localize(now)
        aligned = align_to_period(local_now.date(), granularity)
        earliest = add_periods(aligned, granularity, -(count - 1))

        buckets: List[TimeBucket] = []
        for i in range(count):
            start_day = add_periods(earliest, granularity, i)
            end_day = add_periods(start_day, granularity, 1)
            end = self.local_midnight(end_day)
            if i == count - 1 and granularity != Granularity.DAY:
                end = end + self.boundary_margin
            buckets.append(TimeBucket(
                label=format_label(start_day, granularity),
                start=self.local_midnight(start_day),
                end=end,
            ))

        return buckets

    def nominal_length(
        self,
        granularity: Granularity,
        buckets: List[TimeBucket],
    ) -> timedelta:
        """Elapsed length of the displayed range without the boundary extension"""
        last_day = self.localize(buckets[-1].start).date()
        nominal_end = self.local_midnight(add_periods(last_day, granularity, 1))
        # Same-zone subtraction is wall-clock; compare instants in UTC
        return nominal_end.astimezone(timezone.utc) - buckets[0].start.astimezone(timezone.utc)
